"""
Dispatch of side-effecting rule actions (notifications, automations, events).
"""

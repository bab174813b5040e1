"""
Rule performance tracking.

Every per-rule outcome is appended to an execution log and folded into a
per-rule aggregate (counts, running average time, revenue impact). Writes
happen off the evaluation path and never fail an evaluation.
"""

"""
Account alert rules: trigger evaluators, channel dispatch and the engine
that ties them together with per-rule cooldown.
"""

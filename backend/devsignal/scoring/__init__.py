"""
PQA scoring: pure rule evaluation (rules) and the persisting engine (engine).
"""

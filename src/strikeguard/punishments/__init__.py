"""
Strikes and the punishments they escalate to.
"""

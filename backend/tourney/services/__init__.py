"""
Bracket services.

Pure rules (seeding, bracket_builder, match_lifecycle, schedule_conflicts)
work on in-memory Match objects. MatchService wires them to a
MatchRepository, the per-key locks and a notification sink.
"""

"""
Activity log module: dated interactions per company with optional next-action follow-ups.
Only the author (or an admin) may change an entry.
"""

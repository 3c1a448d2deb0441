"""FAQ retrieval system.

Questions are matched against knowledge-base fingerprints (embeddings):
- hit:  matched entries become context for a generated answer
- miss: the question is queued as pending for an admin to answer or dismiss

Admin resolution promotes pending questions into knowledge entries, which
then match future questions.
"""

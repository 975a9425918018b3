"""
Ingestion — document loading, chunking, and embedding.

These are the building blocks the job pipeline (:mod:`docqa.jobs`) strings
together to turn a document into vectors.
"""

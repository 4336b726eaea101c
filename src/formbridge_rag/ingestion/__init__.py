"""
Ingestion — extraction, chunking, keyword tagging, embedding, and storage.

This module is responsible for the pipeline that turns source documents
(PDF forms, plain text) into knowledge chunks, and for keeping that
process idempotent per source document.
"""

"""
Services Layer

Competition rules, independent of HTTP:
- Accept a RecordStore plus domain inputs (IDs, actors, dates)
- Return result objects (see results.py) instead of raising
- Do NOT depend on HTTP request/response objects
- Only write through the RecordStore
"""

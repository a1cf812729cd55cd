"""
Restaurant and dish catalog.

Responsibilities:
- Define the row shapes returned by the semantic, fuzzy and tag retrievals.
- Serve the bundled demo catalog from pandas DataFrames.
- Call the Supabase RPCs when a hosted catalog is configured.
- Resolve restaurant names and compute opening status.
"""

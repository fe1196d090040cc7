"""
Question Generation Pipeline
generation/

Steps:
1. Quota Distributor  — split the requested counts across chunks (largest remainder)
2. Planner            — pair difficulty and Bloom slots into work units
3. Prompts            — build one prompt per work unit (retrieved passages + chunk)
4. GPT Client         — call the model
5. Question Parser    — validate and normalise the untrusted response
6. Job Runner         — run units concurrently, persist, track progress and status
"""

"""
Product verification for Emboditrust.

First-use verification of issued codes, the append-only attempt log,
counterfeit reports and the public verification API.
"""

"""
Kernel account core: signer, validator and account (``account``), the
UserOperation pipeline (``execution``) and the top-level ``provider``.
"""

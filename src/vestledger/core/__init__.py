"""Ledger core: vesting engine, token ledger, configuration and errors."""

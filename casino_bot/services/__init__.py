"""Services package - game logic, ledger and roll oracle bridge."""

"""External collaborators: ledger HTTP gateway and the Maestro runner loop."""

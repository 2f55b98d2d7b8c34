"""Command-line tools: fl-run, fl-ping, fl-cp."""

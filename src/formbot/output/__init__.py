"""Terminal output: rich console helpers and result formatting."""

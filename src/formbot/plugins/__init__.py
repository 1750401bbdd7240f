"""Plugin system: pluggy hookspecs and the entry-point plugin manager."""

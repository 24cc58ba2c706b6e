"""Terminal rendering primitives (rich console and headless recorder)."""

"""Page-level tooling: injected scripts, DOM snapshot analysis, polling waits."""

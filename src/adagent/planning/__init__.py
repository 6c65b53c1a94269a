"""Question classifiers: goal tracking, strategy detection, metric selection."""

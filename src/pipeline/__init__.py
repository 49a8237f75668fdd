"""Strategy execution engine: graph, inputs, executor, scheduler, retry."""

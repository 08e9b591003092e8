"""Tool schemas, confirmation gate and batch execution for coach tool calls."""

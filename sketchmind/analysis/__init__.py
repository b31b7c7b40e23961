"""Graph analysis, context budgeting, prompting, parsing and materialization."""

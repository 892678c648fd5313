"""
Evaluation suite -- deterministic, no API calls.

Run all: pytest evals/ -v
Run one area: pytest evals/tasks/test_deliberation_evals.py -v
"""

"""Chat feed view orchestration."""

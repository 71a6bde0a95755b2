"""Vulture whitelist for false positives.

Names below are used by frameworks (Pydantic, FastAPI, Typer) rather than
called directly from llmswitch code.
"""

# Pydantic model_config (used internally by Pydantic v2)
model_config = None

# FastAPI route handlers registered by decorators in llmswitch.api.server
complete = None
analyze = None
list_providers = None
active_provider = None
activate_provider = None
usage = None
provider_usage = None
health = None
provider_health = None
test_provider = None
models = None

# Typer callback parameters (consumed by eager callbacks)
version = None

# Response fields only read through JSON serialization
confidence_scores = None
last_checked = None
response_time_ms = None

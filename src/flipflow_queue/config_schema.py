"""
JSON schemas for configuration validation.
"""

QUEUE_SCHEMA = {
    "type": "object",
    "properties": {
        "max_concurrent": {"type": "integer", "minimum": 0},
        "max_retries": {"type": "integer", "minimum": 0},
        "retry_delay": {"type": "number", "minimum": 0.0},
        "job_timeout": {"type": "number", "exclusiveMinimum": 0.0},
        "cleanup_interval": {"type": "number", "exclusiveMinimum": 0.0},
        "max_queue_size": {"type": "integer", "minimum": 1},
        "job_retention": {"type": "number", "minimum": 0.0},
    },
    "additionalProperties": False,
}

LOGGING_SCHEMA = {
    "type": "object",
    "properties": {
        "level": {"type": "string", "enum": ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]},
        "format": {"type": "string", "enum": ["text", "json"]},
        "include_timestamp": {"type": "boolean"},
    },
    "additionalProperties": False,
}

CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "queue": QUEUE_SCHEMA,
        "logging": LOGGING_SCHEMA,
    },
}

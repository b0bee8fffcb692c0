"""Configuration file schema for the home server backup tool."""

RETENTION_SCHEMA = {
    "type": "object",
    "properties": {
        "daily": {"type": "integer", "minimum": 0},
        "weekly": {"type": "integer", "minimum": 0},
        "monthly": {"type": "integer", "minimum": 0},
    },
    "additionalProperties": False,
}

BACKUP_SECTION_SCHEMA = {
    "type": "object",
    "properties": {
        "retention": RETENTION_SCHEMA,
        "database_container": {"type": "string", "minLength": 1},
        "database_service": {"type": "string", "minLength": 1},
        "database_name": {"type": "string", "minLength": 1},
        "database_user": {"type": "string", "minLength": 1},
        "volume_name": {"type": "string", "minLength": 1},
        "helper_image": {"type": "string", "minLength": 1},
        "restore_grace_seconds": {"type": "number", "minimum": 0},
    },
    "additionalProperties": False,
}

CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "external_drive": {
            "type": ["string", "null"],
            "description": "Root of the external storage holding data and backups",
        },
        "storage_path": {
            "type": ["string", "null"],
            "description": "Storage root as written by the deployment script",
        },
        "deployment_date": {"type": "string"},
        "version": {"type": "string"},
        "services": {"type": "object"},
        "backup": BACKUP_SECTION_SCHEMA,
    },
}

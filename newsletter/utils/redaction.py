def redact_email(email: str) -> str:
    """Redact email address for safe logging (e.g., u***@example.com)."""
    try:
        local, domain = email.split("@")
        return f"{local[0]}***@{domain}" if local else f"***@{domain}"
    except (ValueError, IndexError):
        return "***"

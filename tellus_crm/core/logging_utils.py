import re
from typing import Any, Dict, Optional
from fastapi import Request

# Signed URLs carry their credential in the query string
SIGNED_URL_PATTERN = re.compile(r'([?&](?:token|signature)=)[^&\s]+', re.IGNORECASE)


def mask_sensitive_data(data: Any, mask_string: str = "***MASKED***") -> Any:
    """
    Recursively mask sensitive data in dictionaries, lists, and strings.

    Args:
        data: Data structure to mask (dict, list, str, or other)
        mask_string: String to use for masking

    Returns:
        Masked data structure
    """
    if isinstance(data, dict):
        masked = {}
        for key, value in data.items():
            key_lower = str(key).lower()

            # NEVER mask request_id - it's needed for traceability
            if key_lower in ("requestid", "request_id"):
                masked[key] = value
            # Mask keys and tokens
            elif any(term in key_lower for term in ["api_key", "apikey", "service_key", "servicekey"]):
                masked[key] = mask_string
            elif any(term in key_lower for term in ["token", "jwt", "authorization", "bearer"]):
                masked[key] = mask_string
            # Mask passwords and secrets
            elif any(term in key_lower for term in ["password", "secret", "private_key"]):
                masked[key] = mask_string
            # Partial mask for personal documents (show last 2 digits)
            elif key_lower in ["cpf", "customercpf", "customer_cpf", "usercpf", "user_cpf", "cnpj", "rg"]:
                if isinstance(value, str) and len(value) > 4:
                    masked[key] = "*" * (len(value) - 2) + value[-2:]
                else:
                    masked[key] = mask_string
            # Partial mask for phone (show last 4 digits)
            elif key_lower == "phone" and isinstance(value, str) and len(value) > 4:
                masked[key] = "*" * (len(value) - 4) + value[-4:]
            # Partial mask for email (show first 3 chars + domain)
            elif key_lower == "email" and isinstance(value, str):
                if "@" in value:
                    parts = value.split("@")
                    if len(parts) == 2 and len(parts[0]) > 3:
                        masked[key] = parts[0][:3] + "***@" + parts[1]
                    else:
                        masked[key] = mask_string
                else:
                    masked[key] = mask_string
            # Recursively process nested structures
            else:
                masked[key] = mask_sensitive_data(value, mask_string)

        return masked

    elif isinstance(data, list):
        return [mask_sensitive_data(item, mask_string) for item in data]

    elif isinstance(data, str):
        # Mask JWT tokens (starts with eyJ)
        if data.startswith("eyJ") and len(data) > 50:
            return mask_string
        # Strip credentials from signed URLs
        if "://" in data and SIGNED_URL_PATTERN.search(data):
            return SIGNED_URL_PATTERN.sub(r'\1' + mask_string, data)
        return data

    return data


def mask_headers(headers: Dict[str, str]) -> Dict[str, str]:
    """
    Mask sensitive HTTP headers.

    Args:
        headers: Dictionary of HTTP headers

    Returns:
        Dictionary with sensitive headers masked
    """
    masked = {}
    sensitive_headers = [
        "authorization",
        "apikey",
        "x-api-key",
        "cookie",
        "set-cookie"
    ]

    for key, value in headers.items():
        key_lower = key.lower()
        if any(sensitive in key_lower for sensitive in sensitive_headers):
            masked[key] = "***MASKED***"
        else:
            masked[key] = value

    return masked


def get_request_id(request: Optional[Request]) -> Optional[str]:
    """
    Extract request ID from request state.

    Args:
        request: FastAPI Request object (can be None)

    Returns:
        Request ID (UUID string) or None if not available
    """
    if request and hasattr(request.state, "request_id"):
        return request.state.request_id
    return None


def sanitize_log_message(message: str, **kwargs: Any) -> str:
    """
    Sanitize log message by masking sensitive data in keyword arguments.

    Args:
        message: Base log message
        **kwargs: Additional context to include (will be masked).
                  RequestID is appended last so the formatter can pick it up.

    Returns:
        Sanitized log message with context
    """
    request_id = kwargs.pop('RequestID', None) or kwargs.pop('request_id', None)

    masked_kwargs = mask_sensitive_data(kwargs)

    context_parts = []
    for key, value in masked_kwargs.items():
        if isinstance(value, (dict, list)):
            # Keep complex structures short
            context_parts.append(f"{key}: {str(value)[:200]}")
        else:
            context_parts.append(f"{key}: {value}")

    if context_parts:
        formatted_message = f"{message} | {' | '.join(context_parts)}"
    else:
        formatted_message = message

    # Format: "message | context | RequestID: <uuid>"
    if request_id:
        formatted_message = f"{formatted_message} | RequestID: {request_id}"

    return formatted_message


# Link ids are bearer capabilities; only their prefix is logged
LINK_TOKEN_PATTERN = re.compile(r'(/[A-Za-z0-9_-]{8})[A-Za-z0-9_-]{24,}')


def mask_path(path: str) -> str:
    """Truncate link tokens embedded in a URL path."""
    return LINK_TOKEN_PATTERN.sub(r'\1***', path)

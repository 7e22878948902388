# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

# Identity is established by the upstream auth layer, which forwards the
# already-validated operator on these headers.
OPERATOR_ID_HEADER = "X-User-Id"
OPERATOR_ROLE_HEADER = "X-User-Role"

KNOWN_ROLES = {"admin", "manager", "cashier"}


def _is_authenticated() -> bool:
    return hasattr(g, 'operator_id') and hasattr(g, 'operator_role')


def require_operator(f):
    """
    Require a pre-authenticated operator identity.

    Sets the following Flask g attributes:
    - g.operator_id: The operator (cashier) id, as forwarded upstream
    - g.operator_role: The operator's role name

    Returns 401 if either header is missing or the role is unknown.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        operator_id = (request.headers.get(OPERATOR_ID_HEADER) or "").strip()
        role = (request.headers.get(OPERATOR_ROLE_HEADER) or "").strip().lower()

        if not operator_id or not role:
            return jsonify({"error": "Authentication required"}), 401

        if role not in KNOWN_ROLES:
            return jsonify({"error": "Invalid operator role"}), 401

        g.operator_id = operator_id
        g.operator_role = role

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles):
    """Require the operator to hold one of the given roles."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_operator was called first
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            if g.operator_role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": list(roles),
                    "message": f"Role {g.operator_role} is not authorized",
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator

from datetime import timedelta

from auth import create_session_token


def generate_token(user_id: int, role: str = "user", expiration_minutes: int = 525600):
    """Generate a session token for use in development."""
    if role not in ("user", "admin"):
        raise ValueError(f"Unknown role: {role}")
    return create_session_token(user_id, role, timedelta(minutes=expiration_minutes))


if __name__ == "__main__":
    user_id = int(input("Enter user id: "))
    role = input("Enter role (user/admin) [user]: ").strip() or "user"
    token = generate_token(user_id, role)

    print(
        f"\nGenerated {role} token for user {user_id}. "
        "To use the token in development, send it as a bearer token:\n\n"
    )
    print(f"Authorization: Bearer {token}")

from sqlmodel import Session, SQLModel, create_engine

from config import DATABASE_URL

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, echo=False, connect_args=connect_args)


def init_db():
    # Import the table models so they are registered on SQLModel.metadata
    from otpmodel import otp_model  # noqa: F401
    from usermodel import user_model  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session():
    return Session(engine)

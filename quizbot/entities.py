# quizbot/entities.py
from sqlalchemy import BigInteger, Boolean, Integer, text
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

Base = declarative_base()


class UserProgress(Base):
    """
    One solved flag per (user, task). The natural key is the primary key so the
    store can upsert with ON CONFLICT (user_id, task_id).
    """
    __tablename__ = "user_progress"

    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    task_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)

    solved: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )

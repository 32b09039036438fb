"""
app/models/counter.py

Contadores nomeados. Só são alterados pelo upsert atômico do
SequenceAllocator, nunca por leitura seguida de escrita.
"""

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class Counter(Base):
    __tablename__ = "counters"

    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[int] = mapped_column(Integer)

    def __repr__(self) -> str:
        return f"<Counter name={self.name!r} value={self.value!r}>"

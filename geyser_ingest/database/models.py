"""
SQLAlchemy models for ingested transactions.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import BigInteger, Column, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class Txn(Base):
    """
    One row per transaction signature. txn_hash is the primary key, so
    re-delivered updates after a reconnect cannot create duplicate rows.
    """

    __tablename__ = "txns"

    txn_hash = Column(Text, primary_key=True)
    unix_epoch = Column(BigInteger, nullable=False)  # Unix seconds from the update's created_at
    signer = Column(Text, nullable=False)
    fee = Column(BigInteger, nullable=False)  # Lamports

    def to_dict(self) -> dict[str, Any]:
        return {
            "txn_hash": self.txn_hash,
            "unix_epoch": self.unix_epoch,
            "signer": self.signer,
            "fee": self.fee,
        }

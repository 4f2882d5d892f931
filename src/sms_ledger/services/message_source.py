import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import pandas as pd

from sms_ledger.domain.models import InboundMessage

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = {"sender", "body"}


def load_messages_csv(filepath: Path, default_received_at: Optional[datetime] = None) -> List[InboundMessage]:
    """
    Read exported messages from a CSV file.

    Expected columns: sender, body and optionally received_at (day-first
    dates such as 15-01-2024 14:30). Rows with an unparseable or missing
    received_at get default_received_at (now, when not given).

    Args:
        filepath: Path to the CSV export
        default_received_at: Receipt time for rows without one

    Returns:
        Messages in file order

    Raises:
        ValueError: If a required column is missing
    """
    frame = pd.read_csv(filepath, dtype=str, keep_default_na=False)
    frame.columns = [str(c).strip().lower() for c in frame.columns]

    missing = REQUIRED_COLUMNS - set(frame.columns)
    if missing:
        raise ValueError(
            f"{filepath} is missing column(s): {', '.join(sorted(missing))}"
        )

    fallback = default_received_at or datetime.now()
    if "received_at" in frame.columns:
        received = pd.to_datetime(frame["received_at"], dayfirst=True, errors="coerce", format="mixed")
    else:
        received = pd.Series([pd.NaT] * len(frame), index=frame.index)

    messages = []
    for index, row in frame.iterrows():
        timestamp = received[index]
        messages.append(InboundMessage(
            sender=row["sender"].strip(),
            body=row["body"].strip(),
            received_at=fallback if pd.isna(timestamp) else timestamp.to_pydatetime(),
            id=int(index) + 1,
        ))

    logger.info("Loaded %d messages from %s", len(messages), filepath)
    return messages

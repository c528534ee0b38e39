from app.routers import (
    auth,
    documents,
    events,
    families,
    health,
    invites,
    medications,
    messages,
    pay_rates,
    time_entries,
)

__all__ = [
    "health",
    "auth",
    "families",
    "invites",
    "events",
    "medications",
    "documents",
    "messages",
    "time_entries",
    "pay_rates",
]

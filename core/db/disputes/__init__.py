from core.db.disputes.dispute_store import (
    LETTER_SORT_FIELDS,
    LETTER_STATUSES,
    count_dispute_letters,
    create_dispute_letter,
    get_dispute_letter,
    list_dispute_letters,
    list_dispute_letters_for_user,
    mark_dispute_letter_paid,
    update_dispute_letter_status,
)

__all__ = [
    "LETTER_SORT_FIELDS",
    "LETTER_STATUSES",
    "count_dispute_letters",
    "create_dispute_letter",
    "get_dispute_letter",
    "list_dispute_letters",
    "list_dispute_letters_for_user",
    "mark_dispute_letter_paid",
    "update_dispute_letter_status",
]

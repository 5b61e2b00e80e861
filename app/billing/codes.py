"""
Коды ответов Click (SHOP API). Значения фиксированы внешним контрактом шлюза.
"""
from enum import IntEnum


class ClickAction(IntEnum):
    PREPARE = 0
    COMPLETE = 1


class ClickError(IntEnum):
    SUCCESS = 0
    SIGN_CHECK_FAILED = -1
    INCORRECT_AMOUNT = -2
    ACTION_NOT_FOUND = -3
    ALREADY_PAID = -4
    TRANSACTION_NOT_FOUND = -5
    TRANSACTION_DOES_NOT_EXIST = -6
    BAD_REQUEST = -8
    TRANSACTION_CANCELLED = -9


# -8 общий для битого запроса и внутренней ошибки; различаются error_note и HTTP статусом.
INTERNAL_ERROR_CODE = ClickError.BAD_REQUEST

NOTE_SUCCESS = "Success"
NOTE_SIGN_CHECK_FAILED = "SIGN CHECK FAILED!"
NOTE_INCORRECT_AMOUNT = "Incorrect parameter amount"
NOTE_UNKNOWN_ACTION = "Unknown action"
NOTE_ALREADY_PAID = "Already paid"
NOTE_TRANSACTION_NOT_FOUND = "Transaction not found"
NOTE_NO_PREPARE = "Transaction does not exist: no prepare on record"
NOTE_GATEWAY_ID_MISMATCH = "Transaction already associated with a different click_trans_id"
NOTE_BAD_REQUEST = "Error in request from click"
NOTE_INTERNAL_ERROR = "Internal server error"
NOTE_CANCELLED = "Transaction cancelled"
NOTE_FINALIZED_DIFFERENTLY = "Transaction already finalized with a different outcome"

# Поле error в complete: 0 = деньги списаны, -9 = отмена, остальное = неуспех.
OUTCOME_SUCCESS = 0
OUTCOME_CANCELLED = -9

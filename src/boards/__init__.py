import logging
from typing import List

from boards.base import AuthenticationError, JobBoard
from boards.indeed import IndeedBoard

logger = logging.getLogger(__name__)

__all__ = ["AuthenticationError", "JobBoard", "IndeedBoard", "BOARD_TYPES", "get_boards"]

BOARD_TYPES = {
    IndeedBoard.name: IndeedBoard,
}


def get_boards(config, pacer=None) -> List[JobBoard]:
    """Instantiate the boards named in search.job_boards, in config order."""
    boards: List[JobBoard] = []
    for name in config.get_job_boards():
        board_type = BOARD_TYPES.get(str(name).strip().lower())
        if board_type is None:
            logger.warning("Unknown job board %r; skipping", name)
            continue
        boards.append(board_type.from_config(config, pacer=pacer))
    return boards

from __future__ import annotations

import logging
import time
from typing import Callable

from ami_orch.config import WaitPolicy, WaitSpec
from ami_orch.errors import NotYetVisibleError, ProviderError

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], None]


def wait_until(
    check: Callable[[], bool],
    spec: WaitSpec,
    what: str,
    sleep: Sleeper = time.sleep,
) -> bool:
    """
    Poll ``check`` until it returns True or the attempt budget runs out.

    A ProviderError raised by the check means "not visible yet", not a
    terminal failure. The check runs once per attempt, with ``spec.interval_seconds``
    between attempts.

    Returns:
        True if the check succeeded, False if the budget was exhausted and
        the policy is PROCEED.

    Raises:
        NotYetVisibleError: budget exhausted and the policy is FAIL
    """
    for attempt in range(1, spec.attempts + 1):
        try:
            if check():
                logger.debug(f"{what} is visible (attempt {attempt}/{spec.attempts})")
                return True
        except ProviderError as e:
            logger.debug(f"{what} lookup failed on attempt {attempt}: {e}")

        if attempt < spec.attempts:
            logger.info(f"Waiting for {what}... ({attempt}/{spec.attempts})")
            sleep(spec.interval_seconds)

    if spec.policy is WaitPolicy.FAIL:
        raise NotYetVisibleError(f"{what} not visible after {spec.attempts} attempts")

    logger.warning(f"{what} still not visible after {spec.attempts} attempts, proceeding anyway")
    return False

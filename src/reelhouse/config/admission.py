"""Quality admission thresholds loaded from the environment."""

from __future__ import annotations

from reelhouse.domain.admission import DEFAULT_THRESHOLDS, AdmissionThresholds

from .env import env_bool, env_float, env_int


def get_admission_thresholds() -> AdmissionThresholds:
    """Return admission thresholds, overriding defaults with ``REELHOUSE_ADMISSION_*``."""

    defaults = DEFAULT_THRESHOLDS
    return AdmissionThresholds(
        min_votes=env_int("REELHOUSE_ADMISSION_MIN_VOTES", defaults.min_votes),
        min_popularity=env_float("REELHOUSE_ADMISSION_MIN_POPULARITY", defaults.min_popularity),
        full_min_criteria=env_int(
            "REELHOUSE_ADMISSION_FULL_MIN_CRITERIA", defaults.full_min_criteria
        ),
        soft_min_criteria=env_int(
            "REELHOUSE_ADMISSION_SOFT_MIN_CRITERIA", defaults.soft_min_criteria
        ),
        require_votes_for_full=env_bool(
            "REELHOUSE_ADMISSION_REQUIRE_VOTES", defaults.require_votes_for_full
        ),
        person_min_popularity=env_float(
            "REELHOUSE_ADMISSION_PERSON_MIN_POPULARITY", defaults.person_min_popularity
        ),
        key_departments=defaults.key_departments,
    )

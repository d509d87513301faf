"""
Repository for tracked title watermarks, check runs and failed titles
"""

from collections import namedtuple
from typing import Iterable, List, Optional, Sequence, Tuple

import structlog
from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError

from mdchecker.db import db
from mdchecker.exceptions import StoreException
from mdchecker.models import CheckRun, FailedTitle, TrackedTitle, User

logger = structlog.get_logger("repositories.watermark")

DeepCheckCandidate = namedtuple(
    "DeepCheckCandidate", ["manga_id", "last_update", "last_deep_check", "last_deep_check_find"]
)

PushTarget = namedtuple("PushTarget", ["user_id", "pushover_token", "pushover_app_token_override", "count"])


def _forward(column, value):
    """SQL expression that only ever moves a watermark column forward"""
    return case((column < value, value), else_=column)


def _commit(action: str):
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise StoreException(f"Failed to {action}: {e}") from e


class WatermarkRepository:
    """Repository for the watermark store"""

    # ===== Job reads =====

    @staticmethod
    def tracked_title_ids(min_last_check: int) -> List[str]:
        """Distinct titles any user checked at or after min_last_check"""
        stmt = select(TrackedTitle.manga_id).where(TrackedTitle.last_check >= min_last_check).distinct()
        return list(db.session.execute(stmt).scalars())

    @staticmethod
    def latest_update_watermark() -> Optional[int]:
        latest = db.session.execute(select(func.max(TrackedTitle.last_update))).scalar()
        if latest is None or latest <= 0:
            return None
        return int(latest)

    @staticmethod
    def stale_deep_check_candidates(limit: int, min_last_check: int, max_watermark: int) -> List[DeepCheckCandidate]:
        """Recently checked titles whose update and deep-check watermarks are both older than max_watermark.

        Least recently deep-checked first.
        """
        last_deep_check = func.max(TrackedTitle.last_deep_check)
        stmt = (
            select(
                TrackedTitle.manga_id,
                func.max(TrackedTitle.last_update),
                last_deep_check,
                func.max(TrackedTitle.last_deep_check_find),
            )
            .group_by(TrackedTitle.manga_id)
            .having(func.max(TrackedTitle.last_check) >= min_last_check)
            .having(func.max(TrackedTitle.last_update) < max_watermark)
            .having(last_deep_check < max_watermark)
            .order_by(last_deep_check.asc(), TrackedTitle.manga_id)
            .limit(limit)
        )
        return [
            DeepCheckCandidate(row[0], int(row[1] or 0), int(row[2] or 0), int(row[3] or 0))
            for row in db.session.execute(stmt)
        ]

    @staticmethod
    def stale_title_candidates(limit: int, max_last_title_check: int) -> List[str]:
        """Titles with stale metadata. Never-failed titles come first, then failed ones by oldest failure."""
        oldest = func.min(TrackedTitle.last_title_check)
        failed_at = func.coalesce(func.max(FailedTitle.last_failure), 0)
        stmt = (
            select(TrackedTitle.manga_id)
            .outerjoin(FailedTitle, FailedTitle.manga_id == TrackedTitle.manga_id)
            .group_by(TrackedTitle.manga_id)
            .having(oldest < max_last_title_check)
            .order_by(failed_at.asc(), oldest.asc(), TrackedTitle.manga_id)
            .limit(limit)
        )
        return list(db.session.execute(stmt).scalars())

    # ===== Job writes =====

    @staticmethod
    def apply_update_batch(manga_ids: Sequence[str], epoch: int):
        """Bump last_update for every row of the given titles in one statement"""
        if not manga_ids:
            return
        db.session.execute(
            update(TrackedTitle)
            .where(TrackedTitle.manga_id.in_(list(manga_ids)))
            .values(last_update=_forward(TrackedTitle.last_update, epoch))
            .execution_options(synchronize_session=False)
        )
        _commit(f"apply update batch of {len(manga_ids)} titles")

    @staticmethod
    def apply_deep_check_batch(results: Sequence[Tuple[str, int]], epoch: int):
        """Write (manga_id, find_time) deep-check results in probe order"""
        if not results:
            return
        for manga_id, find_time in results:
            db.session.execute(
                update(TrackedTitle)
                .where(TrackedTitle.manga_id == manga_id)
                .values(
                    last_deep_check=_forward(TrackedTitle.last_deep_check, epoch),
                    last_deep_check_find=_forward(TrackedTitle.last_deep_check_find, int(find_time or 0)),
                )
                .execution_options(synchronize_session=False)
            )
        _commit(f"apply deep check batch of {len(results)} titles")

    @staticmethod
    def apply_title_metadata(infos: Iterable, epoch: int):
        """Write resolved title metadata and stamp last_title_check"""
        count = 0
        for info in infos:
            db.session.execute(
                update(TrackedTitle)
                .where(TrackedTitle.manga_id == info.manga_id)
                .values(
                    title=info.title,
                    status=info.status,
                    last_volume=info.last_volume,
                    last_chapter=info.last_chapter,
                    last_title_check=epoch,
                )
                .execution_options(synchronize_session=False)
            )
            count += 1
        if count:
            _commit(f"apply metadata for {count} titles")

    @staticmethod
    def record_failed_titles(manga_ids: Sequence[str], epoch: int):
        if not manga_ids:
            return
        db.session.execute(delete(FailedTitle).where(FailedTitle.manga_id.in_(list(manga_ids))))
        db.session.add_all([FailedTitle(manga_id=manga_id, last_failure=epoch) for manga_id in manga_ids])
        _commit(f"record {len(manga_ids)} failed titles")

    @staticmethod
    def clear_failed_titles(manga_ids: Sequence[str]):
        if not manga_ids:
            return
        db.session.execute(delete(FailedTitle).where(FailedTitle.manga_id.in_(list(manga_ids))))
        _commit(f"clear {len(manga_ids)} failed titles")

    @staticmethod
    def failed_title_ids() -> List[str]:
        return list(db.session.execute(select(FailedTitle.manga_id).order_by(FailedTitle.manga_id)).scalars())

    # ===== Check runs =====

    @staticmethod
    def start_run(run_type: str, epoch: int):
        db.session.add(CheckRun(run_type=run_type, start_time=epoch, end_time=None, progress=0))
        _commit(f"start {run_type} run")

    @staticmethod
    def complete_run(run_type: str, epoch: int, end_epoch: int, result_code: int, extra: Optional[int] = None):
        db.session.execute(
            update(CheckRun)
            .where(CheckRun.run_type == run_type, CheckRun.start_time == epoch)
            .values(end_time=end_epoch, result_code=result_code, extra=extra)
            .execution_options(synchronize_session=False)
        )
        _commit(f"complete {run_type} run")

    @staticmethod
    def update_run_progress(run_type: str, epoch: int, processed: int):
        db.session.execute(
            update(CheckRun)
            .where(CheckRun.run_type == run_type, CheckRun.start_time == epoch)
            .values(progress=processed)
            .execution_options(synchronize_session=False)
        )
        _commit(f"update {run_type} progress")

    @staticmethod
    def latest_run(run_type: str) -> Optional[CheckRun]:
        stmt = (
            select(CheckRun)
            .where(CheckRun.run_type == run_type)
            .order_by(CheckRun.start_time.desc())
            .limit(1)
        )
        return db.session.execute(stmt).scalars().first()

    @staticmethod
    def count_runs(run_type: str) -> int:
        return db.session.execute(select(func.count()).select_from(CheckRun).where(CheckRun.run_type == run_type)).scalar()

    # ===== Notifications =====

    @staticmethod
    def users_to_notify(epoch: int) -> List[PushTarget]:
        """Users with a push token and at least one title whose last_update is this run's epoch"""
        count = func.count(TrackedTitle.manga_id)
        stmt = (
            select(User.user_id, User.pushover_token, User.pushover_app_token_override, count)
            .join(TrackedTitle, TrackedTitle.user_id == User.user_id)
            .where(TrackedTitle.last_update == epoch, User.pushover_token.isnot(None))
            .group_by(User.user_id, User.pushover_token, User.pushover_app_token_override)
            .order_by(User.user_id)
        )
        return [PushTarget(row[0], row[1], row[2], int(row[3])) for row in db.session.execute(stmt)]

    # ===== Query API =====

    @staticmethod
    def get_user(user_id: str) -> Optional[User]:
        if not user_id:
            return None
        return db.session.get(User, user_id)

    @staticmethod
    def get_tracked_title(user_id: str, manga_id: str) -> Optional[TrackedTitle]:
        return db.session.get(TrackedTitle, (user_id, manga_id))

    @staticmethod
    def insert_tracked_title(user_id: str, manga_id: str, epoch: int):
        db.session.add(TrackedTitle(user_id=user_id, manga_id=manga_id, last_check=epoch, last_update=0))
        _commit(f"track {manga_id} for {user_id}")

    @staticmethod
    def touch_tracked_title(user_id: str, manga_id: str, epoch: int):
        db.session.execute(
            update(TrackedTitle)
            .where(TrackedTitle.user_id == user_id, TrackedTitle.manga_id == manga_id)
            .values(last_check=epoch)
            .execution_options(synchronize_session=False)
        )
        _commit(f"record check of {manga_id} for {user_id}")

    @staticmethod
    def recent_check_count(user_id: str, min_check: int) -> int:
        stmt = (
            select(func.count())
            .select_from(TrackedTitle)
            .where(TrackedTitle.user_id == user_id, TrackedTitle.last_check >= min_check)
        )
        return int(db.session.execute(stmt).scalar() or 0)

    @staticmethod
    def last_user_check(user_id: str) -> int:
        latest = db.session.execute(
            select(func.max(TrackedTitle.last_check)).where(TrackedTitle.user_id == user_id)
        ).scalar()
        return int(latest) if latest is not None else -1

    @staticmethod
    def user_update_count(user_id: str, latest_check: int) -> int:
        stmt = (
            select(func.count())
            .select_from(TrackedTitle)
            .where(
                TrackedTitle.user_id == user_id,
                TrackedTitle.last_check > latest_check,
                TrackedTitle.last_update > TrackedTitle.last_check,
            )
        )
        return int(db.session.execute(stmt).scalar() or 0)

import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from garden.models.participant import Participant, utcnow
from garden.schemas.participant import ProgressUpdate
from garden.services.errors import NotFound, StorageError
from garden.services.progress_merge import LookupKey, MergeResult, ProgressState, merge_progress
from garden.services.registration import RegistrationInput

logger = logging.getLogger(__name__)


@dataclass
class ImportRecord:
    id: str
    name: str
    phone: str
    employee_id: str
    registered_at: datetime
    updated_at: datetime
    progress_level: int
    flower_seed_name: str | None
    flower_image: str | None
    commitment_percentage: int | None


def state_of(participant: Participant) -> ProgressState:
    return ProgressState(
        level=participant.progress_level or 0,
        seed_name=participant.flower_seed_name,
        flower_image=participant.flower_image,
        commitment_percentage=participant.commitment_percentage,
    )


class ParticipantStore:
    """Blocking SQLAlchemy access to participants; one transaction per call."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    @contextmanager
    def _transaction(self) -> Iterator[Session]:
        db: Session = self._session_factory()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Participant store operation failed")
            raise StorageError() from exc
        except BaseException:
            db.rollback()
            raise
        finally:
            db.close()

    @staticmethod
    def _find(db: Session, key: LookupKey) -> Participant | None:
        if key.user_id:
            participant = db.get(Participant, key.user_id)
            if participant:
                return participant
        if key.phone:
            return db.scalar(
                select(Participant)
                .where(Participant.phone == key.phone)
                .order_by(Participant.registered_at.asc(), Participant.id.asc())
                .limit(1)
            )
        return None

    def resolve_id(self, key: LookupKey) -> str | None:
        with self._transaction() as db:
            participant = self._find(db, key)
            return participant.id if participant else None

    def get(self, key: LookupKey) -> Participant | None:
        with self._transaction() as db:
            return self._find(db, key)

    def apply_progress(
        self,
        participant_id: str,
        update: ProgressUpdate,
        now: datetime | None = None,
    ) -> tuple[Participant, MergeResult]:
        with self._transaction() as db:
            participant = db.get(Participant, participant_id)
            if not participant:
                raise NotFound()

            result = merge_progress(state_of(participant), update)
            if result.changed:
                participant.progress_level = result.state.level
                participant.flower_seed_name = result.state.seed_name
                participant.flower_image = result.state.flower_image
                participant.commitment_percentage = result.state.commitment_percentage
                participant.updated_at = now or utcnow()
            return participant, result

    def upsert_registration(
        self,
        registration: RegistrationInput,
        now: datetime | None = None,
    ) -> tuple[Participant, bool]:
        try:
            return self._upsert_once(registration, now)
        except StorageError as exc:
            if not isinstance(exc.__cause__, IntegrityError):
                raise
            logger.info(
                "Registration for %s raced another writer; retrying as update", registration.phone
            )
            return self._upsert_once(registration, now)

    def _upsert_once(
        self,
        registration: RegistrationInput,
        now: datetime | None,
    ) -> tuple[Participant, bool]:
        timestamp = now or utcnow()
        with self._transaction() as db:
            participant = db.scalar(
                select(Participant).where(
                    Participant.name == registration.name,
                    Participant.phone == registration.phone,
                )
            )
            if participant:
                participant.employee_id = registration.employee_id
                participant.updated_at = timestamp
                return participant, False

            participant = Participant(
                name=registration.name,
                phone=registration.phone,
                employee_id=registration.employee_id,
                registered_at=timestamp,
                updated_at=timestamp,
                progress_level=0,
            )
            db.add(participant)
            db.flush()
            return participant, True

    def list_participants(self, progress_level: int | None = None) -> list[Participant]:
        with self._transaction() as db:
            query = select(Participant)
            if progress_level is None:
                query = query.order_by(Participant.registered_at.asc(), Participant.id.asc())
            else:
                query = query.where(Participant.progress_level == progress_level).order_by(
                    Participant.updated_at.desc(), Participant.id.asc()
                )
            return list(db.scalars(query).all())

    def list_with_flower(self) -> list[Participant]:
        with self._transaction() as db:
            return list(
                db.scalars(
                    select(Participant)
                    .where(
                        or_(
                            Participant.flower_seed_name.is_not(None),
                            Participant.flower_image.is_not(None),
                        )
                    )
                    .order_by(Participant.updated_at.asc(), Participant.id.asc())
                ).all()
            )

    def import_records(self, records: Iterable[ImportRecord]) -> int:
        count = 0
        with self._transaction() as db:
            for record in records:
                db.merge(
                    Participant(
                        id=record.id,
                        name=record.name,
                        phone=record.phone,
                        employee_id=record.employee_id,
                        registered_at=record.registered_at,
                        updated_at=record.updated_at,
                        progress_level=record.progress_level,
                        flower_seed_name=record.flower_seed_name,
                        flower_image=record.flower_image,
                        commitment_percentage=record.commitment_percentage,
                    )
                )
                count += 1
        return count

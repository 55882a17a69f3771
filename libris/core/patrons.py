import logging
from libris.core.exceptions import ConflictError
from libris.core.models import Patron, Role

logger = logging.getLogger(__name__)


def get_patron(txn, patron_id) -> Patron:
    return txn.get(Patron, patron_id, label="Patron")


def register_patron(txn, patron_id, name, email, role=Role.MEMBER) -> Patron:
    """Creates the borrow-limit projection for an identity-provider user.
    `max_borrow` is fixed from the role policy at registration.
    """
    role = Role(role)
    if txn.find(Patron, patron_id):
        raise ConflictError(f"Patron {patron_id} is already registered.", patron_id=patron_id)
    if txn.query(Patron).filter(Patron.email == email).first():
        raise ConflictError(f"Email {email} is already registered.", email=email)
    patron = txn.add(Patron(
        patron_id=patron_id,
        name=name,
        email=email,
        role=role,
        borrowed_count=0,
        max_borrow=role.max_borrow,
        created_at=txn.now,
    ))
    txn.flush()
    logger.info(f"Registered {role.value} {patron_id}")
    return patron

from hashlib import sha256
from typing import Any, Callable

from secp256k1lab.secp256k1 import Scalar


CONTEXT_STRING = b"FROST-secp256k1-SHA256-v1"

# A source of cryptographically secure random bytes, e.g. secrets.token_bytes.
# Tests pass a seeded generator instead.
RandomSource = Callable[[int], bytes]


###
### Hash suite
###


def _tagged(tag: bytes, m: bytes) -> bytes:
    return sha256(CONTEXT_STRING + tag + m).digest()


def H1(m: bytes) -> bytes:
    """Hash used to derive binding factors."""
    return _tagged(b"rho", m)


def H2(m: bytes) -> bytes:
    """Hash used for the Schnorr challenge.

    Unlike the other hash functions, this one is neither prefixed with the
    context string nor tagged, so that the resulting signatures are plain
    Schnorr signatures.
    """
    return sha256(m).digest()


def H3(m: bytes) -> bytes:
    """Hash used to derive nonces."""
    return _tagged(b"nonce", m)


def H4(m: bytes) -> bytes:
    """Hash used to compress the message in binding factor inputs."""
    return _tagged(b"msg", m)


def H5(m: bytes) -> bytes:
    """Hash used to compress the encoded commitment list."""
    return _tagged(b"com", m)


def hash_to_scalar(h: Callable[[bytes], bytes], m: bytes) -> Scalar:
    return Scalar.from_bytes_wrapping(h(m))


###
### Exceptions
###


class ThresholdOrCountError(ValueError):
    """Raised if `2 <= t <= n <= 2**32 - 1` does not hold."""


class ZeroIdentifierError(ValueError):
    """Raised if a participant identifier is zero.

    Identifiers are the x-coordinates used in Lagrange interpolation at zero,
    so the identifier zero would collide with the secret itself.
    """


class DuplicateIdentifierError(ValueError):
    """Raised if two participants in a session have the same identifier.

    Attributes:
        participant (int): The duplicated identifier.
    """

    def __init__(self, participant: int, *args: Any):
        self.participant = participant
        super().__init__(participant, *args)


class InterpolationError(ValueError):
    """Raised if an interpolation set is malformed.

    This is the case if the identifier to interpolate for is missing from the
    set, or if the set contains an identifier more than once. Both indicate a
    setup bug in the caller.
    """


class NonceReuseError(ValueError):
    """Raised if a secret nonce is used a second time.

    Secret nonces are overwritten with zeros when they are used for signing.
    Signing twice with the same nonce would leak the secret share.
    """


class SessionStateError(ValueError):
    """Raised if a role object is driven out of protocol order."""


class DeserializationError(ValueError):
    """Raised if a scalar or group element encoding is invalid."""


class ProtocolError(Exception):
    """Base exception for errors caused by received protocol messages."""


class MissingBindingFactorError(ProtocolError):
    """Raised if no binding factor exists for a participant.

    Binding factors are computed for every commitment in the session, so a
    missing binding factor means the commitment list and the binding factor
    list do not belong to the same session.

    Attributes:
        participant (int): Identifier of the participant.
    """

    def __init__(self, participant: int, *args: Any):
        self.participant = participant
        super().__init__(participant, *args)


class InvalidContributionError(ProtocolError):
    """Raised if a signer sent an invalid value.

    This exception is raised by the coordinator code when it detects that a
    signer has deviated from the protocol, e.g., by sending a signature share
    that does not verify against the signer's public share. Assuming messages
    have been transmitted correctly, this exception implies that the signer is
    faulty.

    Attributes:
        participant (int): Identifier of the faulty signer.
        contrib (str): The kind of value that was invalid, e.g., "commitment"
            or "sigshare".
    """

    def __init__(self, participant: int, contrib: str, *args: Any):
        self.participant = participant
        self.contrib = contrib
        super().__init__(participant, contrib, *args)


class FaultyCoordinatorError(ProtocolError):
    """Raised if the coordinator is faulty.

    This exception is raised by the signer code when the round 2 message of
    the coordinator does not match the commitments and the message it claims
    to be signing, e.g., because its binding factors or challenge were not
    derived from them. Assuming protocol messages have been transmitted
    correctly and the raising signer is not faulty, this exception implies
    that the coordinator is indeed faulty.
    """

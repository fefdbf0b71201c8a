"""Reference implementation of FROST threshold Schnorr signing.

WARNING: This code is slow and trivially vulnerable to side channel attacks. Do
not use for anything but tests.

The public API consists of all functions and classes with docstrings, including
the types in their arguments and return values, and the exceptions they raise;
see also the `__all__` list. All other definitions are internal.

A signing session is run by `t` or more `Signer` objects and one `Coordinator`
object. They only exchange the message types `Commitment`, `CoordinatorMsg`,
`SignatureShare` and `Signature`, so the roles can run in different processes
connected by any transport that preserves these values.
"""

import logging
from enum import Enum
from secrets import token_bytes
from typing import Dict, List, NamedTuple, Optional, Sequence

from secp256k1lab.secp256k1 import GE, Scalar

from .shamir import NonZeroScalar, SecretShare, validate_threshold
from .signing import (
    BindingFactor,
    Commitment,
    Signature,
    SignatureShare,
    SignerState1,
    aggregate,
    compute_binding_factors,
    compute_challenge,
    compute_group_commitment,
    sign,
    signer_round1,
    signer_round2,
    sort_commitments,
    verify,
    verify_message,
    verify_signature_share,
)
from .util import (
    FaultyCoordinatorError,
    InvalidContributionError,
    ProtocolError,
    RandomSource,
    SessionStateError,
    ThresholdOrCountError,
)

__all__ = [
    # Classes
    "Signer",
    "Coordinator",
    # Functions
    "params_validate",
    # Exceptions
    "ThresholdOrCountError",
    "SessionStateError",
    "ProtocolError",
    "InvalidContributionError",
    "FaultyCoordinatorError",
    # Types
    "SessionParams",
    "SessionState",
    "CoordinatorMsg",
]

logger = logging.getLogger(__name__)


###
### Session parameters
###


class SessionParams(NamedTuple):
    """A `SessionParams` tuple holds the common parameters of a signing setup.

    Attributes:
        t: The signing threshold. At least `t` signers must take part in a
            session for its signature to verify.
        n: The total number of participants holding secret shares.

    It must hold that `2 <= t <= n <= 2**32 - 1`.
    """

    t: int
    n: int


def params_validate(params: SessionParams) -> None:
    """Check that `params` describes a usable threshold setup.

    Raises:
        ThresholdOrCountError: If `2 <= t <= n <= 2**32 - 1` does not hold.
    """
    t, n = params
    validate_threshold(t, n)


class SessionState(Enum):
    INITIALIZED = "initialized"
    NONCE_COMMITTED = "nonce committed"
    BINDING_FACTORS_KNOWN = "binding factors known"
    SIGNATURE_SHARED = "signature shared"
    AGGREGATED = "aggregated"
    VERIFIED = "verified"
    REJECTED = "rejected"


class CoordinatorMsg(NamedTuple):
    """Round 2 message from the coordinator to every signer in the session.

    Attributes:
        msg: The message being signed.
        commitments: The commitments of all signers in the session, in
            ascending identifier order.
        binding_factors: One binding factor per signer in the session, in
            ascending identifier order. The identifiers double as the
            interpolation set.
        challenge: The Schnorr challenge of the session.

    The binding factors and the challenge are a function of the other fields,
    so every signer can check them before signing.
    """

    msg: bytes
    commitments: List[Commitment]
    binding_factors: List[BindingFactor]
    challenge: Scalar

    def identifiers(self) -> List[NonZeroScalar]:
        return [bf.identifier for bf in self.binding_factors]


###
### Signer
###


class Signer:
    """A participant holding one secret share of the group key.

    A signer takes part in one session at a time: `commit` starts a session
    with fresh nonces, and `sign` finishes it. The nonces of a session are
    consumed by `sign` and never leave the signer.

    A signer does not take the coordinator's binding factors and challenge on
    trust. `sign` derives them again from the commitment list and the message
    in the `CoordinatorMsg`, so a coordinator cannot choose them freely.

    Arguments:
        secshare: This participant's secret share from the dealer.
        group_pk: The group public key.
        is_blind: If set, this signer contributes no binding nonce. This is a
            non-standard experimental extension for blind signing.
        random_bytes: Source of randomness for nonce generation.
    """

    def __init__(
        self,
        secshare: SecretShare,
        group_pk: GE,
        is_blind: bool = False,
        random_bytes: RandomSource = token_bytes,
    ) -> None:
        self.identifier = NonZeroScalar(secshare.index)
        self._secshare = secshare
        self.group_pk = group_pk
        self.is_blind = is_blind
        self._random_bytes = random_bytes
        self._state1: Optional[SignerState1] = None
        self.state = SessionState.INITIALIZED

    def commit(self) -> Commitment:
        """Run round 1 and return the commitment to send to the coordinator.

        Any unfinished previous session of this signer is abandoned; its
        nonces are never used.
        """
        if self._state1 is not None:
            logger.debug("Signer %d abandons unfinished session", int(self.identifier))
            self._state1.secnonce[:] = bytearray(64)
        self._state1, commitment = signer_round1(
            self._secshare, self.is_blind, self._random_bytes
        )
        self.state = SessionState.NONCE_COMMITTED
        logger.debug("Signer %d committed to nonces", int(self.identifier))
        return commitment

    def sign(self, cmsg: CoordinatorMsg) -> SignatureShare:
        """Run round 2 and return the signature share for the coordinator.

        Raises:
            SessionStateError: If `commit` has not been called for this
                session, or the session's share has already been produced.
            FaultyCoordinatorError: If this signer's commitment is not in
                `cmsg`, or the binding factors or the challenge in `cmsg` were
                not derived from its commitments and message.
        """
        if self.state is not SessionState.NONCE_COMMITTED or self._state1 is None:
            raise SessionStateError(
                f"Signer {int(self.identifier)} cannot sign in state {self.state.value}"
            )
        self._check_coordinator_msg(cmsg)
        state2 = signer_round2(self._state1, cmsg.binding_factors)
        self.state = SessionState.BINDING_FACTORS_KNOWN
        z = sign(state2, cmsg.challenge, cmsg.identifiers())
        self._state1 = None
        self.state = SessionState.SIGNATURE_SHARED
        logger.debug("Signer %d produced signature share", int(self.identifier))
        return SignatureShare(self.identifier, z)

    def _check_coordinator_msg(self, cmsg: CoordinatorMsg) -> None:
        assert self._state1 is not None
        if self._state1.commitment not in cmsg.commitments:
            raise FaultyCoordinatorError("Own commitment is missing or altered")
        try:
            binding_factors = compute_binding_factors(
                self.group_pk, cmsg.commitments, cmsg.msg
            )
        except ValueError as e:
            raise FaultyCoordinatorError("Invalid commitment list") from e
        if binding_factors != cmsg.binding_factors:
            raise FaultyCoordinatorError("Binding factors do not match commitments")
        R = compute_group_commitment(cmsg.commitments, binding_factors)
        if compute_challenge(R, self.group_pk, cmsg.msg) != cmsg.challenge:
            raise FaultyCoordinatorError("Challenge does not match commitments")


###
### Coordinator
###


class Coordinator:
    """The party that collects commitments and shares and outputs a signature.

    The coordinator holds no secrets. If `pubshares` is given, every received
    signature share is verified and a faulty signer is identified by an
    `InvalidContributionError`. Otherwise, a faulty share only shows up as a
    rejected signature.

    Arguments:
        params: The threshold setup.
        group_pk: The group public key.
        pubshares: Optional list of the public shares `x_i * G` of the
            participants with identifiers 1..n.
    """

    def __init__(
        self,
        params: SessionParams,
        group_pk: GE,
        pubshares: Optional[Sequence[GE]] = None,
    ) -> None:
        params_validate(params)
        if pubshares is not None and len(pubshares) != params.n:
            raise ValueError("There must be exactly n pubshares.")
        self.params = params
        self.group_pk = group_pk
        self.pubshares = pubshares
        self._reset(None)

    def _reset(self, msg: Optional[bytes]) -> None:
        self.msg = msg
        self.commitments: List[Commitment] = []
        self.cmsg: Optional[CoordinatorMsg] = None
        self.group_commitment: Optional[GE] = None
        self.signature: Optional[Signature] = None
        self.state = SessionState.INITIALIZED

    def _expect(self, *states: SessionState) -> None:
        if self.state not in states:
            raise SessionStateError(
                f"Coordinator cannot proceed in state {self.state.value}"
            )

    def start(self, msg: bytes) -> None:
        """Start a new session for signing `msg`.

        Any previous session is discarded. Signers must call `Signer.commit`
        again for the new session.
        """
        self._reset(msg)
        logger.info("Starting signing session for %d-byte message", len(msg))

    def receive_commitments(self, commitments: Sequence[Commitment]) -> CoordinatorMsg:
        """Run the coordinator's part of round 1.

        Arguments:
            commitments: The commitments of the signers taking part in this
                session, in any order.

        Returns:
            CoordinatorMsg: The message to send to every signer in `commitments`.

        Raises:
            SessionStateError: If the session has not been started or already
                received commitments.
            ValueError: If fewer than `t` commitments are given.
            DuplicateIdentifierError: If two commitments have the same
                identifier.
            InvalidContributionError: If a commitment's identifier is not in
                1..n.
        """
        self._expect(SessionState.INITIALIZED)
        if self.msg is None:
            raise SessionStateError("Coordinator has not started a session")
        if len(commitments) < self.params.t:
            raise ValueError(
                f"Need at least {self.params.t} commitments, got {len(commitments)}."
            )
        for c in commitments:
            if not 1 <= int(c.identifier) <= self.params.n:
                raise InvalidContributionError(int(c.identifier), "commitment")
        self.commitments = sort_commitments(commitments)
        self.state = SessionState.NONCE_COMMITTED

        binding_factors = compute_binding_factors(
            self.group_pk, self.commitments, self.msg
        )
        self.group_commitment = compute_group_commitment(
            self.commitments, binding_factors
        )
        challenge = compute_challenge(self.group_commitment, self.group_pk, self.msg)
        self.cmsg = CoordinatorMsg(
            self.msg, self.commitments, binding_factors, challenge
        )
        self.state = SessionState.BINDING_FACTORS_KNOWN
        logger.debug(
            "Derived binding factors for signers %s",
            [int(c.identifier) for c in self.commitments],
        )
        return self.cmsg

    def aggregate(self, sigshares: Sequence[SignatureShare]) -> Signature:
        """Combine the signature shares of all signers of the session.

        Raises:
            SessionStateError: If binding factors have not been derived yet.
            InvalidContributionError: If a share is missing, unexpected,
                sent more than once, or (when pubshares are known) fails
                verification.
        """
        self._expect(SessionState.BINDING_FACTORS_KNOWN)
        assert self.cmsg is not None and self.group_commitment is not None
        identifiers = self.cmsg.identifiers()
        by_identifier: Dict[NonZeroScalar, SignatureShare] = {}
        for share in sigshares:
            if share.identifier in by_identifier or share.identifier not in identifiers:
                raise InvalidContributionError(int(share.identifier), "sigshare")
            by_identifier[share.identifier] = share
        for c in self.commitments:
            share = by_identifier.get(c.identifier)
            if share is None:
                raise InvalidContributionError(int(c.identifier), "sigshare")
            if self.pubshares is not None:
                pubshare = self.pubshares[int(c.identifier) - 1]
                if not verify_signature_share(
                    share,
                    c,
                    pubshare,
                    self.cmsg.binding_factors,
                    self.cmsg.challenge,
                    identifiers,
                ):
                    logger.warning(
                        "Invalid signature share from signer %d", int(c.identifier)
                    )
                    raise InvalidContributionError(int(c.identifier), "sigshare")
        self.state = SessionState.SIGNATURE_SHARED

        s = aggregate([by_identifier[i].z for i in identifiers])
        self.signature = Signature(self.group_commitment, s)
        self.state = SessionState.AGGREGATED
        return self.signature

    def verify(self, signature: Optional[Signature] = None) -> bool:
        """Verify the session's signature (or `signature`, if given).

        A given `signature` is checked as a Schnorr signature on the session's
        message under the group key, with its challenge derived from its own
        `R`. It may stem from another session on the same message.

        The first check of the session's own signature ends the session in
        state VERIFIED or REJECTED. Later checks of it return the same result,
        and checks of other signatures never change the state.
        A rejected signature is a normal outcome. The caller may start a new
        session with fresh nonces.
        """
        self._expect(
            SessionState.AGGREGATED, SessionState.VERIFIED, SessionState.REJECTED
        )
        assert self.cmsg is not None and self.signature is not None
        if signature is not None and signature != self.signature:
            assert self.msg is not None
            return verify_message(signature, self.group_pk, self.msg)
        if self.state is not SessionState.AGGREGATED:
            return self.state is SessionState.VERIFIED
        valid = verify(self.signature, self.group_pk, self.cmsg.challenge)
        if valid:
            self.state = SessionState.VERIFIED
            logger.info("Signature verified")
        else:
            self.state = SessionState.REJECTED
            logger.warning("Signature rejected")
        return valid

"""Algorithms of the two-round FROST signing protocol.

WARNING: This code is slow and trivially vulnerable to side channel attacks. Do
not use for anything but tests.

Functions named `signer_*` and `sign` are run by each signer on its own state.
The remaining functions are run by the coordinator (and, since they are
deterministic, by anyone else who holds the same public inputs).

Commitment lists must be sorted by ascending identifier before they are passed
to any function that hashes them. All parties must use the same order, or they
will derive different binding factors.
"""

from __future__ import annotations

from secrets import token_bytes
from typing import List, NamedTuple, Sequence, Tuple

from secp256k1lab.secp256k1 import GE, G, Scalar

from .shamir import NonZeroScalar, SecretShare, derive_interpolating_value
from .util import (
    H1,
    H2,
    H3,
    H4,
    H5,
    DeserializationError,
    DuplicateIdentifierError,
    MissingBindingFactorError,
    NonceReuseError,
    RandomSource,
    hash_to_scalar,
)


###
### Messages
###


class NonceCommitment(NamedTuple):
    D: GE  # commitment to the hiding nonce
    E: GE  # commitment to the binding nonce


class Commitment(NamedTuple):
    identifier: NonZeroScalar
    D: GE
    E: GE

    def nonce_commitment(self) -> NonceCommitment:
        return NonceCommitment(self.D, self.E)

    def to_bytes(self) -> bytes:
        return (
            self.identifier.to_bytes()
            + self.D.to_bytes_compressed_with_infinity()
            + self.E.to_bytes_compressed_with_infinity()
        )

    @staticmethod
    def from_bytes(b: bytes) -> Commitment:
        if len(b) != 32 + 33 + 33:
            raise DeserializationError("Invalid commitment length")
        identifier = NonZeroScalar.from_bytes(b[0:32])
        try:
            D = GE.from_bytes_compressed(b[32:65])
            # E is the point at infinity for blind signers.
            E = GE.from_bytes_compressed_with_infinity(b[65:98])
        except ValueError as e:
            raise DeserializationError("Invalid commitment encoding") from e
        return Commitment(identifier, D, E)


class BindingFactor(NamedTuple):
    identifier: NonZeroScalar
    rho: Scalar


class SignatureShare(NamedTuple):
    identifier: NonZeroScalar
    z: Scalar


class Signature(NamedTuple):
    R: GE
    s: Scalar

    def to_bytes(self) -> bytes:
        return self.R.to_bytes_compressed_with_infinity() + self.s.to_bytes()

    @staticmethod
    def from_bytes(b: bytes) -> Signature:
        if len(b) != 33 + 32:
            raise DeserializationError("Invalid signature length")
        try:
            R = GE.from_bytes_compressed_with_infinity(b[0:33])
            s = Scalar.from_bytes_checked(b[33:65])
        except ValueError as e:
            raise DeserializationError("Invalid signature encoding") from e
        return Signature(R, s)


###
### Signer state
###


# The secret nonce is the concatenation of the hiding nonce d and the binding
# nonce e. It is a mutable bytearray because it is overwritten with zeros
# when it is used for signing.
SecNonce = bytearray


class SignerState1(NamedTuple):
    identifier: NonZeroScalar
    secshare: Scalar
    secnonce: SecNonce
    commitment: Commitment
    is_blind: bool


class SignerState2(NamedTuple):
    identifier: NonZeroScalar
    secshare: Scalar
    secnonce: SecNonce
    commitment: Commitment
    rho: Scalar


###
### Nonce generation (round 1)
###


def nonce_generate(secret: Scalar, random_bytes: RandomSource = token_bytes) -> Scalar:
    # Hashing the secret together with the randomness keeps the nonce
    # unpredictable if the randomness source is weak but not fully broken.
    rand = random_bytes(32)
    assert len(rand) == 32
    return hash_to_scalar(H3, rand + secret.to_bytes())


def signer_round1(
    secshare: SecretShare,
    is_blind: bool = False,
    random_bytes: RandomSource = token_bytes,
) -> Tuple[SignerState1, Commitment]:
    """Generate fresh nonces and the commitment to send to the coordinator.

    A blind signer does not contribute a binding nonce: its binding nonce is
    zero and its binding nonce commitment is the point at infinity. This is an
    experimental extension for blind signing with a collaborative custodian,
    and is not part of the standard protocol.
    """
    identifier = NonZeroScalar(secshare.index)
    d = nonce_generate(secshare.value, random_bytes)
    # d == 0 cannot occur except with negligible probability.
    assert d != 0
    D = d * G
    if is_blind:
        e = Scalar(0)
        E = GE()
    else:
        e = nonce_generate(secshare.value, random_bytes)
        assert e != 0
        E = e * G
    secnonce = bytearray(d.to_bytes() + e.to_bytes())
    commitment = Commitment(identifier, D, E)
    return (
        SignerState1(identifier, secshare.value, secnonce, commitment, is_blind),
        commitment,
    )


###
### Binding factors
###


def sort_commitments(commitments: Sequence[Commitment]) -> List[Commitment]:
    sorted_commitments = sorted(commitments, key=lambda c: int(c.identifier))
    for prev, curr in zip(sorted_commitments, sorted_commitments[1:]):
        if prev.identifier == curr.identifier:
            raise DuplicateIdentifierError(int(curr.identifier))
    return sorted_commitments


def encode_group_commitment_list(commitments: Sequence[Commitment]) -> bytes:
    for prev, curr in zip(commitments, commitments[1:]):
        if not prev.identifier < curr.identifier:
            raise ValueError(
                "The commitment list must be sorted by strictly ascending identifier."
            )
    return b"".join(c.to_bytes() for c in commitments)


def compute_binding_factors(
    group_pk: GE, commitments: Sequence[Commitment], msg: bytes
) -> List[BindingFactor]:
    group_pk_enc = group_pk.to_bytes_compressed_with_infinity()
    msg_hash = H4(msg)
    commitment_hash = H5(encode_group_commitment_list(commitments))
    rho_input_prefix = group_pk_enc + msg_hash + commitment_hash

    binding_factors = []
    for identifier, _, _ in commitments:
        rho = hash_to_scalar(H1, rho_input_prefix + identifier.to_bytes())
        binding_factors.append(BindingFactor(identifier, rho))
    return binding_factors


def binding_factor_for_participant(
    binding_factors: Sequence[BindingFactor], identifier: NonZeroScalar
) -> Scalar:
    for i, rho in binding_factors:
        if i == identifier:
            return rho
    raise MissingBindingFactorError(int(identifier))


def compute_group_commitment(
    commitments: Sequence[Commitment], binding_factors: Sequence[BindingFactor]
) -> GE:
    R = GE()
    for identifier, D, E in commitments:
        rho = binding_factor_for_participant(binding_factors, identifier)
        R = R + D + rho * E
    return R


def compute_challenge(R: GE, group_pk: GE, msg: bytes) -> Scalar:
    challenge_input = (
        R.to_bytes_compressed_with_infinity()
        + group_pk.to_bytes_compressed_with_infinity()
        + msg
    )
    return hash_to_scalar(H2, challenge_input)


###
### Signature shares (round 2)
###


def signer_round2(
    state1: SignerState1, binding_factors: Sequence[BindingFactor]
) -> SignerState2:
    identifier, secshare, secnonce, commitment, _ = state1
    rho = binding_factor_for_participant(binding_factors, identifier)
    return SignerState2(identifier, secshare, secnonce, commitment, rho)


def sign(
    state2: SignerState2, challenge: Scalar, identifiers: Sequence[NonZeroScalar]
) -> Scalar:
    """Compute this signer's signature share.

    The secret nonce in `state2` is overwritten with zeros, so that a second
    call with the same state raises `NonceReuseError`.

    Raises:
        NonceReuseError: If the secret nonce has already been used.
        InterpolationError: If this signer's identifier is not contained in
            `identifiers` exactly once.
    """
    identifier, secshare, secnonce, _, rho = state2
    d = Scalar.from_bytes_checked(bytes(secnonce[0:32]))
    e = Scalar.from_bytes_checked(bytes(secnonce[32:64]))
    if d == 0:
        raise NonceReuseError
    lam = derive_interpolating_value(identifiers, identifier)
    # Overwrite the secnonce argument with zeros such that subsequent calls of
    # sign with the same secnonce raise a NonceReuseError.
    secnonce[:] = bytearray(64)
    return d + rho * e + lam * secshare * challenge


def verify_signature_share(
    sigshare: SignatureShare,
    commitment: Commitment,
    pubshare: GE,
    binding_factors: Sequence[BindingFactor],
    challenge: Scalar,
    identifiers: Sequence[NonZeroScalar],
) -> bool:
    identifier, z = sigshare
    if identifier != commitment.identifier:
        return False
    rho = binding_factor_for_participant(binding_factors, identifier)
    lam = derive_interpolating_value(identifiers, identifier)
    return z * G == commitment.D + rho * commitment.E + (challenge * lam) * pubshare


###
### Aggregation and verification
###


def aggregate(sigshares: Sequence[Scalar]) -> Scalar:
    # Only the shares of the signers in the session's commitment list may be
    # summed. Shares of further signers are not needed.
    return Scalar.sum(*sigshares) if sigshares else Scalar(0)


def verify(signature: Signature, group_pk: GE, challenge: Scalar) -> bool:
    R, s = signature
    return s * G == R + challenge * group_pk


def verify_message(signature: Signature, group_pk: GE, msg: bytes) -> bool:
    challenge = compute_challenge(signature.R, group_pk, msg)
    return verify(signature, group_pk, challenge)

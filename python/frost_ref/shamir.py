from __future__ import annotations

from secrets import token_bytes
from typing import Any, List, NamedTuple, Sequence, Tuple, Union

from secp256k1lab.secp256k1 import GE, G, Scalar

from .util import (
    DeserializationError,
    InterpolationError,
    RandomSource,
    ThresholdOrCountError,
    ZeroIdentifierError,
)


class NonZeroScalar:
    # A scalar which is guaranteed not to be zero.
    #
    # Participant identifiers are represented as non-zero scalars because they
    # serve as x-coordinates in Lagrange interpolation at x = 0.
    value: Scalar

    def __init__(self, value: Union[int, Scalar]) -> None:
        value = Scalar(value)
        if value == 0:
            raise ZeroIdentifierError("Identifier must not be zero")
        self.value = value

    def to_bytes(self) -> bytes:
        return self.value.to_bytes()

    @staticmethod
    def from_bytes(b: bytes) -> NonZeroScalar:
        try:
            value = Scalar.from_bytes_checked(b)
        except ValueError as e:
            raise DeserializationError("Invalid identifier encoding") from e
        return NonZeroScalar(value)

    def __int__(self) -> int:
        return int(self.value)

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, NonZeroScalar):
            return NotImplemented
        return int(self) == int(other)

    def __lt__(self, other: NonZeroScalar) -> bool:
        return int(self) < int(other)

    def __hash__(self) -> int:
        return hash(int(self))

    def __repr__(self) -> str:
        return f"NonZeroScalar({int(self)})"


class SecretShare(NamedTuple):
    index: int
    value: Scalar


def validate_threshold(t: int, n: int) -> None:
    if not (2 <= t <= n <= 2**32 - 1):
        raise ThresholdOrCountError


###
### Interpolation
###


def derive_interpolating_value(
    identifiers: Sequence[NonZeroScalar], x_i: NonZeroScalar
) -> Scalar:
    """Return the Lagrange coefficient L_i(0) of `x_i` over `identifiers`.

    Raises:
        InterpolationError: If `x_i` is not contained in `identifiers`
            exactly once, or if `identifiers` contains duplicates.
    """
    if x_i not in identifiers:
        raise InterpolationError(f"Identifier {int(x_i)} not in interpolation set")
    if len(set(identifiers)) != len(identifiers):
        raise InterpolationError("Interpolation set contains duplicates")

    num = Scalar(1)
    deno = Scalar(1)
    for x_j in identifiers:
        if x_j == x_i:
            continue
        num *= x_j.value
        deno *= x_j.value - x_i.value
    return num / deno


def reconstruct(shares: Sequence[SecretShare]) -> Scalar:
    """Interpolate the shared secret f(0) from `shares`.

    The result is only the secret if at least t shares of the same sharing
    are given. With fewer shares, the result is a well-defined but unrelated
    scalar; this is not detected.
    """
    identifiers = [NonZeroScalar(share.index) for share in shares]
    secret = Scalar(0)
    for x_i, share in zip(identifiers, shares):
        secret += derive_interpolating_value(identifiers, x_i) * share.value
    return secret


def derive_group_pubkey(
    identifiers: Sequence[NonZeroScalar], pubshares: Sequence[GE]
) -> GE:
    # Interpolate the group public key "in the exponent" from t public shares.
    if len(identifiers) != len(pubshares):
        raise ValueError("The identifiers and pubshares must have the same length.")
    Q = GE()
    for x_i, X_i in zip(identifiers, pubshares):
        Q = Q + derive_interpolating_value(identifiers, x_i) * X_i
    return Q


###
### Sharing
###


class Polynomial:
    # A scalar polynomial.
    #
    # A polynomial f of degree at most t - 1 is represented by a list `coeffs`
    # of t coefficients, i.e., f(x) = coeffs[0] + ... + coeffs[t-1] *
    # x^(t-1).
    coeffs: List[Scalar]

    def __init__(self, coeffs: List[Scalar]) -> None:
        self.coeffs = coeffs

    def eval(self, x: Scalar) -> Scalar:
        # Evaluate a polynomial at position x.

        value = Scalar(0)
        # Reverse coefficients to compute evaluation via Horner's method
        for coeff in self.coeffs[::-1]:
            value = value * x + coeff
        return value

    def __call__(self, x: Scalar) -> Scalar:
        return self.eval(x)


class VSSCommitment:
    ges: List[GE]

    def __init__(self, ges: List[GE]) -> None:
        self.ges = ges

    def t(self) -> int:
        return len(self.ges)

    def pubshare(self, index: int) -> GE:
        # Return the public share of the participant with the given index,
        # i.e., f(index) * G.
        pubshare: GE = GE.batch_mul(
            *((index**j, self.ges[j]) for j in range(0, len(self.ges)))
        )
        return pubshare

    def verify_secshare(self, share: SecretShare) -> bool:
        actual = share.value * G
        valid: bool = actual == self.pubshare(share.index)
        return valid

    def to_bytes(self) -> bytes:
        return b"".join([ge.to_bytes_compressed_with_infinity() for ge in self.ges])

    @staticmethod
    def from_bytes_and_t(b: bytes, t: int) -> VSSCommitment:
        if len(b) != 33 * t:
            raise DeserializationError("Invalid VSS commitment length")
        try:
            ges = [
                GE.from_bytes_compressed_with_infinity(b[i : i + 33])
                for i in range(0, 33 * t, 33)
            ]
        except ValueError as e:
            raise DeserializationError("Invalid VSS commitment encoding") from e
        return VSSCommitment(ges)

    def commitment_to_secret(self) -> GE:
        return self.ges[0]


class VSS:
    f: Polynomial

    def __init__(self, f: Polynomial) -> None:
        self.f = f

    @staticmethod
    def generate(secret: Scalar, t: int, random_bytes: RandomSource) -> VSS:
        coeffs = [secret] + [
            Scalar.from_bytes_wrapping(random_bytes(32)) for _ in range(t - 1)
        ]
        return VSS(Polynomial(coeffs))

    def secshare_for(self, index: int) -> SecretShare:
        # Return the secret share for the participant with the given index.
        #
        # This computes f(index).
        if index < 1:
            raise ValueError(f"Invalid participant index: {index}")
        return SecretShare(index, self.f(Scalar(index)))

    def secshares(self, n: int) -> List[SecretShare]:
        # This computes [f(1), ..., f(n)].
        return [self.secshare_for(i) for i in range(1, n + 1)]

    def commit(self) -> VSSCommitment:
        return VSSCommitment([c * G for c in self.f.coeffs])

    def secret(self) -> Scalar:
        return self.f.coeffs[0]


def split(
    secret: Scalar, t: int, n: int, random_bytes: RandomSource = token_bytes
) -> List[SecretShare]:
    """Split `secret` into `n` shares such that any `t` of them recover it.

    Raises:
        ThresholdOrCountError: If `2 <= t <= n <= 2**32 - 1` does not hold.
    """
    validate_threshold(t, n)
    return VSS.generate(secret, t, random_bytes).secshares(n)


def trusted_dealer_keygen(
    secret: Scalar, t: int, n: int, random_bytes: RandomSource = token_bytes
) -> Tuple[GE, List[SecretShare], VSSCommitment]:
    """Share the group secret key `secret` among `n` participants.

    Returns:
        GE: The group public key.
        List[SecretShare]: The secret shares of the participants with
            indices 1..n, to be delivered privately.
        VSSCommitment: Commitment to the sharing polynomial, to be published
            so that participants can verify their shares and anyone can
            derive public shares.

    Raises:
        ThresholdOrCountError: If `2 <= t <= n <= 2**32 - 1` does not hold.
        ValueError: If `secret` is zero.
    """
    validate_threshold(t, n)
    if secret == 0:
        raise ValueError("The group secret key must not be zero.")
    vss = VSS.generate(secret, t, random_bytes)
    com = vss.commit()
    group_pk = com.commitment_to_secret()
    assert not group_pk.infinity
    return group_pk, vss.secshares(n), com

"""
Key Derivation Functions
========================

Memory-hard key derivation for password-based encryption.

Implements a variation of Colin Percival's ROMix construction
(http://www.tarsnap.com/scrypt/scrypt.pdf):

    1. Seed:   X0 = H(password || salt)
    2. Build:  table[i] = H(table[i-1]), step_count entries, kept in
               locked memory. Each entry depends on the previous one, so
               the build cannot be parallelized.
    3. Mix:    step_count rounds of Y = H(Y xor table[idx]), where idx is
               the last four bytes of Y (little-endian) mod step_count.
               The reads are unpredictable, so an attacker must keep the
               whole table resident or recompute entries on demand.
    4. Shape:  truncate Y, or extend it with H(Y || counter) blocks.

A table of 64 kB or more does not fit a GPU thread's fast local memory;
the default 32 MB cap keeps derivation reachable on small clients while
calibration spends the rest of the time budget on repeated full passes.

Security Properties:
    - Lookup table lives in a locked SecureBuffer for one call only
    - Table wiped on every exit path
    - Deterministic in (password, salt, step_count, hash, output size,
      iteration count) on every platform
    - No shared mutable state; concurrent derivations are independent
"""

from __future__ import annotations

import json
import logging
import math
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Final, Mapping, Optional, Union

from securekdf.core.crypto.entropy import DEFAULT_RANDOM_SOURCE
from securekdf.core.crypto.hashing import (
    DEFAULT_HASH_ALGORITHM,
    HashAlgorithm,
    HashFunction,
    get_hash_function,
)
from securekdf.core.memory.secure_memory import SecureBuffer
from securekdf.core.memory.zeroization import ZeroizeContext
from securekdf.security import constants
from securekdf.utils.validators import (
    KdfConfigurationError,
    validate_memory_budget,
    validate_positive_int,
    validate_positive_number,
)

# Calibration defaults
DEFAULT_KDF_MAX_MEMORY: Final[int] = constants.DEFAULT_KDF_MAX_MEMORY_BYTES
DEFAULT_TARGET_SECONDS: Final[float] = constants.DEFAULT_KDF_TARGET_SECONDS
DEFAULT_OUTPUT_BYTES: Final[int] = constants.DERIVED_KEY_LENGTH_BYTES
DEFAULT_SALT_BYTES: Final[int] = constants.SALT_LENGTH_BYTES

CALIBRATION_START_MEMORY: Final[int] = 2 * 1024  # 2 kB
CALIBRATION_MIN_TIMING_SECONDS: Final[float] = 0.02
_MAX_TIMING_PASSES: Final[int] = 1000
_MIN_PASS_SECONDS: Final[float] = 1e-6

_CALIBRATION_PASSWORD: Final[bytes] = b"This is an example key to test KDF iteration speed"

_log = logging.getLogger("securekdf.kdf")

Clock = Callable[[], float]


class CalibrationCancelledError(RuntimeError):
    """Calibration was cancelled or ran past its timeout."""
    pass


@dataclass(frozen=True, slots=True)
class KdfParameters:
    """
    Immutable ROMix parameter record.

    ``step_count`` and ``hash_output_bytes`` are derived from the hash and
    ``memory_bytes`` on construction; use ``with_memory()`` to get a record
    with a different budget.

    Attributes:
        memory_bytes: Target lookup-table size in bytes
        salt: Salt mixed into the seed hash (a private copy of the input)
        hash_name: Hash algorithm identifier
        output_bytes: Length of the derived key
        iteration_count: Number of chained full passes
        step_count: memory_bytes // hash_output_bytes
        hash_output_bytes: Digest size of hash_name
    """

    memory_bytes: int
    salt: SecureBuffer
    hash_name: HashAlgorithm = DEFAULT_HASH_ALGORITHM
    output_bytes: int = DEFAULT_OUTPUT_BYTES
    iteration_count: int = 1
    step_count: int = field(init=False)
    hash_output_bytes: int = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        """Validate and derive the table geometry."""
        hash_name = HashAlgorithm.parse(self.hash_name)
        hash_output = get_hash_function(hash_name).digest_size

        validate_memory_budget(self.memory_bytes, hash_output)
        validate_positive_int(self.output_bytes, "output_bytes")
        validate_positive_int(self.iteration_count, "iteration_count")

        # Private copy: the caller may wipe or reuse its own salt buffer
        lock = self.salt.is_locked if isinstance(self.salt, SecureBuffer) else True
        object.__setattr__(self, "salt", SecureBuffer.from_bytes(self.salt, lock_memory=lock))

        object.__setattr__(self, "hash_name", hash_name)
        object.__setattr__(self, "hash_output_bytes", hash_output)
        object.__setattr__(self, "step_count", self.memory_bytes // hash_output)

    def with_memory(self, memory_bytes: int) -> "KdfParameters":
        """Return a copy with a new memory budget (step_count recomputed)."""
        return replace(self, memory_bytes=memory_bytes)

    def with_iterations(self, iteration_count: int) -> "KdfParameters":
        """Return a copy with a new iteration count."""
        return replace(self, iteration_count=iteration_count)

    def describe(self) -> str:
        """Log-safe summary; never includes the salt value."""
        return (
            f"memory={self.memory_bytes} bytes ({self.step_count} x "
            f"{self.hash_output_bytes}-byte {self.hash_name.value} entries), "
            f"iterations={self.iteration_count}, output={self.output_bytes} bytes, "
            f"salt_len={len(self.salt)}"
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Persistable form of the parameters.

        Every field is carried verbatim; changing any of them changes
        the derived key.
        """
        return {
            "memory_bytes": self.memory_bytes,
            "step_count": self.step_count,
            "salt": self.salt.to_bytes().hex(),
            "hash_name": self.hash_name.value,
            "output_bytes": self.output_bytes,
            "iteration_count": self.iteration_count,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "KdfParameters":
        """
        Rebuild parameters from ``to_dict()`` output.

        Raises:
            KdfConfigurationError: If fields are missing or inconsistent
        """
        required = ("memory_bytes", "step_count", "salt", "hash_name",
                    "output_bytes", "iteration_count")
        missing = [name for name in required if name not in data]
        if missing:
            raise KdfConfigurationError(f"Missing KDF parameter fields: {', '.join(missing)}")

        try:
            salt = bytes.fromhex(data["salt"])
        except (TypeError, ValueError) as e:
            raise KdfConfigurationError(f"Invalid salt encoding: {e}") from e

        params = cls(
            memory_bytes=data["memory_bytes"],
            salt=salt,
            hash_name=HashAlgorithm.parse(data["hash_name"]),
            output_bytes=data["output_bytes"],
            iteration_count=data["iteration_count"],
        )

        if data["step_count"] != params.step_count:
            raise KdfConfigurationError(
                f"Persisted step_count {data['step_count']} does not match "
                f"memory_bytes {params.memory_bytes} ({params.step_count} steps)"
            )

        return params

    def to_json(self) -> str:
        """Serialize to a JSON document."""
        return json.dumps(self.to_dict(), sort_keys=True)

    @classmethod
    def from_json(cls, document: str | bytes) -> "KdfParameters":
        """Parse a JSON document produced by ``to_json()``."""
        try:
            data = json.loads(document)
        except json.JSONDecodeError as e:
            raise KdfConfigurationError(f"Invalid KDF parameter document: {e}") from e
        if not isinstance(data, dict):
            raise KdfConfigurationError("KDF parameter document must be a JSON object")
        return cls.from_dict(data)


def romix_one_pass(
    password: SecureBuffer,
    parameters: KdfParameters,
    hash_function: Optional[HashFunction] = None,
    lock_memory: bool = True,
) -> SecureBuffer:
    """
    Run a single ROMix pass.

    Args:
        password: Password (may be empty)
        parameters: Table geometry, salt and output size
        hash_function: Hash capability; resolved from parameters if None
        lock_memory: Lock the lookup table and output

    Returns:
        Derived key material of ``parameters.output_bytes`` bytes

    Raises:
        KdfConfigurationError: If step_count is zero or the hash does not
            match the parameters
    """
    if not isinstance(password, SecureBuffer):
        raise TypeError("password must be a SecureBuffer")

    if hash_function is None:
        hash_function = get_hash_function(parameters.hash_name)

    step_count = parameters.step_count
    hsz = hash_function.digest_size
    if step_count <= 0:
        raise KdfConfigurationError("step_count is zero; refusing to derive a key")
    if hsz != parameters.hash_output_bytes:
        raise KdfConfigurationError(
            f"Hash output size {hsz} does not match parameters ({parameters.hash_output_bytes})"
        )

    table = SecureBuffer(step_count * hsz, lock_memory=lock_memory)
    try:
        with table.exposed(writable=True) as lut:
            with password.exposed() as pw, parameters.salt.exposed() as salt:
                lut[0:hsz] = hash_function.digest(pw, salt)

            # Sequential build: slot i is the hash of slot i-1
            for offset in range(hsz, step_count * hsz, hsz):
                lut[offset:offset + hsz] = hash_function.digest(lut[offset - hsz:offset])

            # Random-access mix, starting from the last table entry
            y = bytes(lut[-hsz:])
            for _ in range(step_count):
                index = int.from_bytes(y[-4:], "little") % step_count
                entry = lut[index * hsz:(index + 1) * hsz]
                mixed = int.from_bytes(y, "little") ^ int.from_bytes(entry, "little")
                y = hash_function.digest(mixed.to_bytes(hsz, "little"))

        return _shape_output(y, parameters.output_bytes, hash_function, lock_memory)
    finally:
        table.wipe_and_release()


def _shape_output(
    y: bytes,
    output_bytes: int,
    hash_function: HashFunction,
    lock_memory: bool,
) -> SecureBuffer:
    """Truncate ``y`` or extend it with H(y || counter) blocks."""
    if output_bytes <= len(y):
        return SecureBuffer.from_bytes(memoryview(y)[:output_bytes], lock_memory=lock_memory)

    blocks = math.ceil(output_bytes / len(y))
    shaped = bytearray(blocks * len(y))
    with ZeroizeContext(shaped):
        shaped[0:len(y)] = y
        for counter in range(1, blocks):
            start = counter * len(y)
            shaped[start:start + len(y)] = hash_function.digest(y, counter.to_bytes(4, "big"))
        return SecureBuffer.from_bytes(memoryview(shaped)[:output_bytes], lock_memory=lock_memory)


class MemoryHardKdf:
    """
    Memory-hard password KDF with host self-calibration.

    Parameters are set exactly once: passed to the constructor, measured
    with ``calibrate_parameters()``, or supplied with
    ``use_precomputed_parameters()`` (e.g. loaded next to an encrypted
    artifact). The lookup table only exists during a derivation call.

    Usage:
        kdf = MemoryHardKdf()
        params = kdf.calibrate_parameters(target_seconds=0.25)
        store(params.to_json())

        with SecureBuffer.from_bytes(b"passphrase") as password:
            with kdf.derive_key(password) as key:
                encrypt(data, key)

        # Later, on any machine
        kdf = MemoryHardKdf(KdfParameters.from_json(stored))

    Security Notes:
        - Calibration is best effort: total cost lands in roughly
          [T/2, T] seconds on the calibrating machine (ceil rounding may
          add up to one pass), never an exact guarantee
        - Empty passwords are accepted; reject them at a higher layer
    """

    __slots__ = (
        "_parameters",
        "_hash_function",
        "_output_bytes",
        "_random_source",
        "_clock",
        "_lock_memory",
        "_target_seconds",
        "_max_memory_bytes",
        "_salt_bytes",
        "_lock",
    )

    def __init__(
        self,
        parameters: Optional[KdfParameters] = None,
        *,
        hash_algorithm: Union[str, HashAlgorithm] = DEFAULT_HASH_ALGORITHM,
        output_bytes: int = DEFAULT_OUTPUT_BYTES,
        hash_function: Optional[HashFunction] = None,
        random_source: Any = None,
        clock: Optional[Clock] = None,
        lock_memory: bool = True,
        target_seconds: float = DEFAULT_TARGET_SECONDS,
        max_memory_bytes: int = DEFAULT_KDF_MAX_MEMORY,
        salt_bytes: int = DEFAULT_SALT_BYTES,
    ) -> None:
        """
        Initialize the KDF.

        Args:
            parameters: Pre-computed parameters (skip calibration)
            hash_algorithm: Hash used when calibrating
            output_bytes: Derived key size when calibrating
            hash_function: Hash capability override (must match the algorithm)
            random_source: Object with ``random_bytes(n)`` for salts
            clock: Monotonic clock in seconds, used for calibration timing
            lock_memory: Lock tables and outputs in memory
            target_seconds: Default calibration time target
            max_memory_bytes: Default calibration memory cap
            salt_bytes: Size of generated salts
        """
        if parameters is not None:
            hash_algorithm = parameters.hash_name
            output_bytes = parameters.output_bytes

        algorithm = HashAlgorithm.parse(hash_algorithm)
        if hash_function is None:
            hash_function = HashFunction(algorithm)
        elif hash_function.name != algorithm.value:
            raise KdfConfigurationError(
                f"Hash function {hash_function.name!r} does not match {algorithm.value!r}"
            )

        self._hash_function = hash_function
        self._output_bytes = validate_positive_int(output_bytes, "output_bytes")
        self._random_source = random_source or DEFAULT_RANDOM_SOURCE
        self._clock: Clock = clock or time.perf_counter
        self._lock_memory = lock_memory
        self._target_seconds = target_seconds
        self._max_memory_bytes = max_memory_bytes
        self._salt_bytes = validate_positive_int(salt_bytes, "salt_bytes")
        self._lock = threading.Lock()
        self._parameters: Optional[KdfParameters] = None

        if parameters is not None:
            self._set_parameters(parameters)

    @classmethod
    def from_config(cls, config: Any = None, **kwargs: Any) -> "MemoryHardKdf":
        """
        Build a KDF from the ``kdf`` and ``memory`` configuration sections.

        Args:
            config: SecureConfig instance; the global instance if None
            **kwargs: Extra constructor arguments (parameters, clock, ...)
        """
        if config is None:
            from securekdf.core.config import SecureConfig
            config = SecureConfig.get_instance()

        return cls(
            hash_algorithm=config.kdf.hash_algorithm,
            output_bytes=config.kdf.output_bytes,
            lock_memory=config.memory.lock_memory,
            target_seconds=config.kdf.target_seconds,
            max_memory_bytes=config.kdf.max_memory_bytes,
            salt_bytes=config.kdf.salt_length,
            **kwargs,
        )

    @property
    def has_parameters(self) -> bool:
        """Whether parameters have been set."""
        return self._parameters is not None

    @property
    def parameters(self) -> KdfParameters:
        """
        Get the active parameters.

        Raises:
            KdfConfigurationError: If parameters have not been set
        """
        if self._parameters is None:
            raise KdfConfigurationError(
                "KDF parameters not set; calibrate or supply precomputed parameters"
            )
        return self._parameters

    @property
    def hash_function(self) -> HashFunction:
        """Get the hash capability in use."""
        return self._hash_function

    def _set_parameters(self, parameters: KdfParameters) -> None:
        """Install parameters once."""
        if parameters.hash_name.value != self._hash_function.name:
            raise KdfConfigurationError(
                f"Parameters use {parameters.hash_name.value!r} but the KDF "
                f"hashes with {self._hash_function.name!r}"
            )
        if parameters.step_count <= 0:
            raise KdfConfigurationError("step_count is zero; refusing weak parameters")

        with self._lock:
            if self._parameters is not None:
                raise KdfConfigurationError("KDF parameters are already set")
            self._parameters = parameters

    # ------------------------------------------------------------------
    # Parameter selection
    # ------------------------------------------------------------------

    def use_precomputed_parameters(
        self,
        memory_bytes: int,
        iteration_count: int,
        salt: Union[SecureBuffer, bytes],
        *,
        output_bytes: Optional[int] = None,
    ) -> KdfParameters:
        """
        Install parameters calibrated earlier (e.g. persisted with a wallet).

        Raises:
            KdfConfigurationError: If the parameters are invalid or already set
        """
        with SecureBuffer.from_bytes(salt, lock_memory=self._lock_memory) as staged:
            parameters = KdfParameters(
                memory_bytes=memory_bytes,
                salt=staged,
                hash_name=HashAlgorithm.parse(self._hash_function.name),
                output_bytes=output_bytes if output_bytes is not None else self._output_bytes,
                iteration_count=iteration_count,
            )
        self._set_parameters(parameters)
        return parameters

    def calibrate_parameters(
        self,
        target_seconds: Optional[float] = None,
        max_memory_bytes: Optional[int] = None,
        *,
        salt: Union[SecureBuffer, bytes, None] = None,
        cancel_event: Optional[threading.Event] = None,
        timeout_seconds: Optional[float] = None,
    ) -> KdfParameters:
        """
        Pick the largest memory budget this host can process within the
        time target, then add passes to spend the remaining time budget.

        Args:
            target_seconds: Desired total derivation time
            max_memory_bytes: Upper bound for the lookup table
            salt: Salt to use; random bytes if None
            cancel_event: Set to abort calibration
            timeout_seconds: Abort calibration after this long. Cancellation
                and the deadline are checked between timed passes, so a
                single slow pass can run past the deadline by up to about
                twice the target time.

        Returns:
            The installed parameters

        Raises:
            KdfConfigurationError: If target/memory are invalid or parameters
                are already set
            CalibrationCancelledError: If cancelled or timed out
        """
        target = validate_positive_number(
            self._target_seconds if target_seconds is None else target_seconds,
            "target_seconds",
        )
        hsz = self._hash_function.digest_size
        max_memory = validate_memory_budget(
            self._max_memory_bytes if max_memory_bytes is None else max_memory_bytes,
            hsz,
            "max_memory_bytes",
        )
        if self._parameters is not None:
            raise KdfConfigurationError("KDF parameters are already set")

        deadline: Optional[float] = None
        if timeout_seconds is not None:
            deadline = self._clock() + validate_positive_number(timeout_seconds, "timeout_seconds")

        def checkpoint() -> None:
            if cancel_event is not None and cancel_event.is_set():
                raise CalibrationCancelledError("KDF calibration cancelled")
            if deadline is not None and self._clock() > deadline:
                raise CalibrationCancelledError(
                    f"KDF calibration exceeded {timeout_seconds} seconds"
                )

        if salt is None:
            salt_buf = SecureBuffer.generate_random(
                self._salt_bytes, self._random_source, lock_memory=self._lock_memory
            )
        else:
            salt_buf = SecureBuffer.from_bytes(salt, lock_memory=self._lock_memory)

        try:
            with SecureBuffer.from_bytes(_CALIBRATION_PASSWORD) as probe_password:
                selected, selected_seconds = self._search_memory(
                    probe_password, salt_buf, target, max_memory, checkpoint
                )
                pass_seconds = self._average_pass_seconds(
                    probe_password, selected, selected_seconds, target, checkpoint
                )
        except BaseException:
            salt_buf.wipe_and_release()
            raise

        if pass_seconds < target / 2:
            iterations = math.ceil(target / pass_seconds)
        else:
            iterations = 1

        parameters = selected.with_iterations(iterations)
        selected.salt.wipe_and_release()
        salt_buf.wipe_and_release()
        self._set_parameters(parameters)

        _log.info(
            "KDF calibrated in %.3fs/pass: %s",
            pass_seconds,
            parameters.describe(),
        )
        return parameters

    def _search_memory(
        self,
        password: SecureBuffer,
        salt: SecureBuffer,
        target: float,
        max_memory: int,
        checkpoint: Callable[[], None],
    ) -> tuple[KdfParameters, float]:
        """Double the budget until a pass exceeds the target or the cap."""
        budget = max(min(CALIBRATION_START_MEMORY, max_memory), self._hash_function.digest_size)
        selected: Optional[KdfParameters] = None
        selected_seconds = 0.0

        while True:
            checkpoint()
            candidate = KdfParameters(
                memory_bytes=budget,
                salt=salt,
                hash_name=HashAlgorithm.parse(self._hash_function.name),
                output_bytes=self._output_bytes,
            )
            elapsed = self._time_pass(password, candidate)
            _log.debug("KDF probe: %d bytes in %.4fs", budget, elapsed)

            if elapsed > target:
                if selected is None:
                    _log.warning(
                        "Smallest KDF budget (%d bytes) already exceeds %.3fs target",
                        budget,
                        target,
                    )
                    selected, selected_seconds = candidate, elapsed
                break

            selected, selected_seconds = candidate, elapsed
            if budget * 2 > max_memory:
                break
            budget *= 2

        return selected, selected_seconds

    def _average_pass_seconds(
        self,
        password: SecureBuffer,
        parameters: KdfParameters,
        first_sample: float,
        target: float,
        checkpoint: Callable[[], None],
    ) -> float:
        """Re-time small budgets over several passes for a stable average."""
        total, passes = first_sample, 1
        minimum = min(CALIBRATION_MIN_TIMING_SECONDS, target)

        while total < minimum and passes < _MAX_TIMING_PASSES:
            checkpoint()
            total += self._time_pass(password, parameters)
            passes += 1

        return max(total / passes, _MIN_PASS_SECONDS)

    def _time_pass(self, password: SecureBuffer, parameters: KdfParameters) -> float:
        """Wall-clock duration of one full pass."""
        start = self._clock()
        result = romix_one_pass(password, parameters, self._hash_function, self._lock_memory)
        elapsed = self._clock() - start
        result.wipe_and_release()
        return elapsed

    # ------------------------------------------------------------------
    # Derivation
    # ------------------------------------------------------------------

    def derive_one_pass(self, password: SecureBuffer) -> SecureBuffer:
        """
        Derive key material with a single ROMix pass.

        Raises:
            KdfConfigurationError: If parameters are missing or malformed
        """
        return romix_one_pass(
            password, self.parameters, self._hash_function, self._lock_memory
        )

    def derive_key(self, password: SecureBuffer) -> SecureBuffer:
        """
        Derive the final key: ``iteration_count`` chained passes, each
        pass's output feeding the next as its password. The salt and
        table geometry stay fixed.

        Raises:
            KdfConfigurationError: If parameters are missing or malformed
        """
        parameters = self.parameters
        result = romix_one_pass(password, parameters, self._hash_function, self._lock_memory)

        for _ in range(parameters.iteration_count - 1):
            previous = result
            try:
                result = romix_one_pass(
                    previous, parameters, self._hash_function, self._lock_memory
                )
            finally:
                previous.wipe_and_release()

        return result

    def log_parameters(self, level: int = logging.INFO) -> None:
        """Log the active parameters without the salt value."""
        _log.log(level, "KDF parameters: %s", self.parameters.describe())

    def __repr__(self) -> str:
        """Safe representation."""
        if self._parameters is None:
            return f"MemoryHardKdf(hash={self._hash_function.name}, uncalibrated)"
        return (
            f"MemoryHardKdf(hash={self._hash_function.name}, "
            f"steps={self._parameters.step_count}, "
            f"iterations={self._parameters.iteration_count})"
        )


def derive_key(
    password: SecureBuffer,
    parameters: KdfParameters,
    lock_memory: bool = True,
) -> SecureBuffer:
    """
    Derive a key from password and precomputed parameters.

    Convenience wrapper around ``MemoryHardKdf(parameters).derive_key()``.
    """
    return MemoryHardKdf(parameters, lock_memory=lock_memory).derive_key(password)

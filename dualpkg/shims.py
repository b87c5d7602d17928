# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Shim resolution policy.

Maps the declarative shim configuration to concrete shim descriptors, split
into the shims used by distributed code and the (superset) shims used by
test code. Resolution is a pure function of the options.

Evaluation order is pinned: deno, blob, crypto, prompts, timers, undici,
custom, custom_dev. Consumers rely on it for attribution output and for
first-wins version selection when descriptors share a package name.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable


class ShimValue(Enum):
	"""Where a capability shim applies."""

	OFF = "off"
	ON = "on"  # distributed code and test code
	TEST_ONLY = "test-only"  # test code only


@dataclass(frozen=True)
class ScopedTest:
	"""
	`deno: {"test": ...}`: shim only the test-registration surface of the
	runtime namespace.

	The scoped form always lands in the test shims, whatever `value` says,
	unless `value` is OFF.
	"""

	value: ShimValue


ShimOption = ShimValue | ScopedTest


@dataclass(frozen=True)
class GlobalName:
	name: str
	type_only: bool = False


@dataclass(frozen=True)
class ShimPackage:
	name: str
	version: str | None = None  # None: runtime built-in, never added to a manifest


@dataclass(frozen=True)
class Shim:
	"""A package providing substitutes for one or more runtime globals."""

	package: ShimPackage
	global_names: tuple[GlobalName, ...]

	def to_dict(self) -> dict[str, Any]:
		pkg: dict[str, Any] = {"name": self.package.name}
		if self.package.version is not None:
			pkg["version"] = self.package.version
		return {
			"package": pkg,
			"globalNames": [
				{"name": g.name, "typeOnly": True} if g.type_only else g.name for g in self.global_names
			],
		}


@dataclass(frozen=True)
class ShimOptions:
	deno: ShimOption = ShimValue.OFF
	blob: ShimOption = ShimValue.OFF
	crypto: ShimOption = ShimValue.OFF
	prompts: ShimOption = ShimValue.OFF
	timers: ShimOption = ShimValue.OFF
	undici: ShimOption = ShimValue.OFF
	custom: tuple[Shim, ...] = ()
	custom_dev: tuple[Shim, ...] = ()


@dataclass(frozen=True)
class ResolvedShims:
	dist_shims: tuple[Shim, ...]
	test_shims: tuple[Shim, ...]


CAPABILITIES = ("deno", "blob", "crypto", "prompts", "timers", "undici")


def _type_only(name: str) -> GlobalName:
	return GlobalName(name=name, type_only=True)


def deno_shim() -> Shim:
	return Shim(package=ShimPackage("@deno/shim-deno", "~0.1.1"), global_names=(GlobalName("Deno"),))


def deno_test_shim() -> Shim:
	return Shim(package=ShimPackage("@deno/shim-deno-test", "~0.2.0"), global_names=(GlobalName("Deno"),))


_CRYPTO_TYPES = (
	"Crypto",
	"SubtleCrypto",
	"AlgorithmIdentifier",
	"Algorithm",
	"RsaOaepParams",
	"BufferSource",
	"AesCtrParams",
	"AesCbcParams",
	"AesGcmParams",
	"CryptoKey",
	"KeyAlgorithm",
	"KeyType",
	"KeyUsage",
	"EcdhKeyDeriveParams",
	"HkdfParams",
	"HashAlgorithmIdentifier",
	"Pbkdf2Params",
	"AesDerivedKeyParams",
	"HmacImportParams",
	"JsonWebKey",
	"RsaOtherPrimesInfo",
	"KeyFormat",
	"RsaHashedKeyGenParams",
	"RsaKeyGenParams",
	"BigInteger",
	"EcKeyGenParams",
	"NamedCurve",
	"CryptoKeyPair",
	"AesKeyGenParams",
	"HmacKeyGenParams",
	"RsaHashedImportParams",
	"EcKeyImportParams",
	"AesKeyAlgorithm",
	"RsaPssParams",
	"EcdsaParams",
)


def crypto_shim() -> Shim:
	return Shim(
		package=ShimPackage("@deno/shim-crypto", "~0.2.0"),
		global_names=(GlobalName("crypto"),) + tuple(_type_only(n) for n in _CRYPTO_TYPES),
	)


def blob_shim() -> Shim:
	# `buffer` is a Node built-in module: no version, no manifest entry.
	return Shim(package=ShimPackage("buffer"), global_names=(GlobalName("Blob"),))


def prompts_shim() -> Shim:
	return Shim(
		package=ShimPackage("@deno/shim-prompts", "~0.1.0"),
		global_names=(GlobalName("alert"), GlobalName("confirm"), GlobalName("prompt")),
	)


def timers_shim() -> Shim:
	return Shim(
		package=ShimPackage("@deno/shim-timers", "~0.1.0"),
		global_names=(GlobalName("setInterval"), GlobalName("setTimeout")),
	)


def undici_shim() -> Shim:
	return Shim(
		package=ShimPackage("undici", "^4.12.1"),
		global_names=tuple(GlobalName(n) for n in ("fetch", "File", "FormData", "Headers", "Request", "Response")),
	)


_CAPABILITY_SHIMS: dict[str, Callable[[], Shim]] = {
	"deno": deno_shim,
	"blob": blob_shim,
	"crypto": crypto_shim,
	"prompts": prompts_shim,
	"timers": timers_shim,
	"undici": undici_shim,
}


def resolve_shims(options: ShimOptions) -> ResolvedShims:
	"""
	Resolve shim options to the dist/test shim lists.

	Rules per capability:
	- ON: appended to both lists
	- TEST_ONLY: appended to the test list only
	- OFF: nothing
	- ScopedTest (deno only): the narrower test-registration descriptor,
	  appended to the test list only

	Custom shims go to both lists verbatim; custom_dev shims to the test list.
	"""
	shims: list[Shim] = []
	test_shims: list[Shim] = []

	for capability in CAPABILITIES:
		option = getattr(options, capability)
		if isinstance(option, ScopedTest):
			if capability != "deno":
				raise ValueError(f"scoped test shim is only supported for 'deno', got '{capability}'")
			if option.value is not ShimValue.OFF:
				test_shims.append(deno_test_shim())
			continue
		get_shim = _CAPABILITY_SHIMS[capability]
		if option is ShimValue.ON:
			shims.append(get_shim())
			test_shims.append(get_shim())
		elif option is ShimValue.TEST_ONLY:
			test_shims.append(get_shim())
		elif option is not ShimValue.OFF:
			raise AssertionError(f"unhandled shim option {option!r}")

	shims.extend(options.custom)
	test_shims.extend(options.custom)
	test_shims.extend(options.custom_dev)

	return ResolvedShims(dist_shims=tuple(shims), test_shims=tuple(test_shims))


def shim_dependencies(shims: Iterable[Shim]) -> dict[str, str]:
	"""
	Collapse shim descriptors to `{package name: version}`.

	First occurrence of a package name wins. Packages without a version are
	runtime built-ins and are left out.
	"""
	seen: set[str] = set()
	out: dict[str, str] = {}
	for shim in shims:
		name = shim.package.name
		if name in seen:
			continue
		seen.add(name)
		if shim.package.version is not None:
			out[name] = shim.package.version
	return out


__all__ = [
	"CAPABILITIES",
	"GlobalName",
	"ResolvedShims",
	"ScopedTest",
	"Shim",
	"ShimOption",
	"ShimOptions",
	"ShimPackage",
	"ShimValue",
	"resolve_shims",
	"shim_dependencies",
]

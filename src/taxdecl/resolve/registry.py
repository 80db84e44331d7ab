from __future__ import annotations

import logging
from dataclasses import dataclass

from taxdecl.model import AssetClass, Instrument, SecurityRef
from taxdecl.model.instrument import normalize_name

from .isin import normalize_isin

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Resolution:
    instrument: Instrument
    # Set when this call created an unverified placeholder or rejected a bad id.
    warning: str | None = None


class InstrumentRegistry:
    """Run-local arena of canonical instruments keyed by ISIN or name+exchange."""

    def __init__(self) -> None:
        self._by_isin: dict[str, Instrument] = {}
        self._by_name: dict[tuple[str, str], Instrument] = {}
        self._by_ticker: dict[tuple[str, str], Instrument] = {}
        self._by_bare_name: dict[str, list[Instrument]] = {}

    def __len__(self) -> int:
        return len(self.instruments())

    def instruments(self) -> list[Instrument]:
        seen: dict[str, Instrument] = {}
        for inst in [*self._by_isin.values(), *self._by_name.values()]:
            seen.setdefault(inst.key, inst)
        return [seen[k] for k in sorted(seen)]

    def resolve(self, ref: SecurityRef) -> Resolution:
        isin = normalize_isin(ref.isin, ref.country) or normalize_isin(
            ref.security_id, ref.country
        )
        if isin:
            inst = self._by_isin.get(isin)
            if inst is None:
                inst = Instrument(
                    isin=isin,
                    name=ref.name.strip() or (ref.ticker or isin),
                    asset_class=ref.asset_class or AssetClass.EQUITY,
                    country=isin[:2],
                    currency=ref.currency,
                    exchange=ref.exchange,
                    ticker=ref.ticker,
                    verified=True,
                )
                self._by_isin[isin] = inst
                logger.debug("Registered instrument %s (%s)", inst.name, isin)
            self._index_aliases(inst, ref)
            return Resolution(inst)

        cached = self._lookup(ref)
        bad_id = ref.isin or ref.security_id
        if cached is not None:
            if cached.verified or not bad_id:
                return Resolution(cached)
            return Resolution(cached, f"identifier {bad_id!r} failed validation")

        inst = Instrument(
            isin=None,
            name=ref.name.strip() or (ref.ticker or "?"),
            asset_class=ref.asset_class or AssetClass.EQUITY,
            country=ref.country,
            currency=ref.currency,
            exchange=ref.exchange,
            ticker=ref.ticker,
            verified=False,
        )
        self._by_name[(normalize_name(inst.name), inst.exchange.upper())] = inst
        self._index_aliases(inst, ref)
        reason = (
            f"identifier {bad_id!r} failed validation"
            if bad_id
            else "no machine identifier reported"
        )
        logger.debug("Unverified instrument %s: %s", ref.describe(), reason)
        return Resolution(inst, f"{ref.describe()}: {reason}")

    def _lookup(self, ref: SecurityRef) -> Instrument | None:
        exch = ref.exchange.upper()
        if ref.name:
            hit = self._by_name.get((normalize_name(ref.name), exch))
            if hit is not None:
                return hit
        if ref.ticker:
            hit = self._by_ticker.get((ref.ticker.upper(), exch))
            if hit is not None:
                return hit
        if not exch and ref.name:
            candidates = self._by_bare_name.get(normalize_name(ref.name), [])
            if len(candidates) == 1:
                return candidates[0]
        return None

    def _index_aliases(self, inst: Instrument, ref: SecurityRef) -> None:
        exch = ref.exchange.upper()
        for name in {inst.name, ref.name}:
            if not name:
                continue
            self._by_name.setdefault((normalize_name(name), exch), inst)
            bare = self._by_bare_name.setdefault(normalize_name(name), [])
            if inst not in bare:
                bare.append(inst)
        if ref.ticker:
            self._by_ticker.setdefault((ref.ticker.upper(), exch), inst)

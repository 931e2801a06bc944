from datetime import datetime, timedelta
from typing import Optional

import pytz


def _iso(dt: datetime) -> str:
    return dt.astimezone(pytz.utc).isoformat().replace("+00:00", "Z")


def _situation(summary, description, start, end, created, line_ref):
    window = {"StartTime": _iso(start)}
    if end is not None:
        window["EndTime"] = _iso(end)
    return {
        "Summary": summary,
        "Description": description,
        "PublicationWindow": window,
        "CreationTime": _iso(created),
        "Affects": {"VehicleJourneys": {"AffectedVehicleJourney": [{"LineRef": line_ref}]}},
    }


def get_sample_data(now: Optional[datetime] = None) -> dict:
    """SIRI-shaped document served for apiKey=DEMO, timed around `now`."""
    now = now or datetime.now(pytz.utc)
    hour = timedelta(hours=1)

    situations = [
        _situation(
            "B46 buses are delayed due to a family of unicorns blocking Utica Avenue. "
            "Rainbow cleanup crews en route.",
            "Unicorns are grazing along Utica Avenue between Eastern Parkway and Avenue U. "
            "Expect delays of up to 15 minutes.",
            now - hour,
            now + 4 * hour,
            now - hour,
            "MTABC_B46",
        ),
        _situation(
            "M15-SBS service suspended between Houston St and 14th St due to a giant robot "
            "vs kaiju battle. Use teleportation pods as an alternative.",
            "M14A, M14D and M9 buses have force fields for safe passage.",
            now - 2 * hour,
            now + 6 * hour,
            now - 2 * hour,
            "MTA NYCT_M15",
        ),
        _situation(
            "Q58 buses delayed 10-20 minutes due to a time portal malfunction at Queens Boulevard.",
            None,
            now - timedelta(minutes=30),
            None,
            now - timedelta(minutes=30),
            "MTA NYCT_Q58",
        ),
        _situation(
            "Bx12-SBS stops on Fordham Rd moved one block east for dragon nesting season.",
            "Temporary stops are marked with glowing scales.",
            now - 3 * 24 * hour,
            now + 7 * 24 * hour,
            now - 3 * 24 * hour,
            "MTA NYCT_BX12+",
        ),
    ]

    return {
        "Siri": {
            "ServiceDelivery": {
                "ResponseTimestamp": _iso(now),
                "SituationExchangeDelivery": [
                    {"Situations": {"PtSituationElement": situations}},
                ],
            }
        }
    }

# src/utils/date_utils.py
import calendar
import datetime
from typing import Union
from zoneinfo import ZoneInfo

from src.config import TIMEZONE


def local_timezone() -> ZoneInfo:
    return ZoneInfo(TIMEZONE)


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def add_months(moment: datetime.datetime, months: int) -> datetime.datetime:
    """Soma meses de calendário, limitando o dia ao fim do mês de destino.
    Ex: 31/01 + 1 mês -> 28/02 (ou 29/02 em ano bissexto)
    """
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def parse_timestamp(value: Union[str, datetime.datetime, None]) -> Union[datetime.datetime, None]:
    """Converte um timestamp vindo do Supabase em datetime com fuso."""
    if value is None or isinstance(value, datetime.datetime):
        return value
    parsed = datetime.datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed

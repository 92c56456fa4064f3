"""Locale-aware date formatting used for chat history date headers."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from palchat.settings import settings


logger = logging.getLogger(__name__)

DEFAULT_LOCALE = "en"
DEFAULT_DATE_FORMAT = "MMM D"
DEFAULT_TIME_FORMAT = "HH:mm"

_TOKEN_RE = re.compile(
    r"\[([^\]]*)\]|YYYY|YY|MMMM|MMM|MM|M|DD|D|dddd|ddd|HH|H|hh|h|mm|m|ss|s|A|a"
)


@dataclass(frozen=True, slots=True)
class LocaleData:
    months: tuple[str, ...]
    months_short: tuple[str, ...]
    weekdays: tuple[str, ...]
    weekdays_short: tuple[str, ...]
    meridiem: tuple[str, str] = ("AM", "PM")


def _split(value: str) -> tuple[str, ...]:
    return tuple(value.split("_"))


# Weekdays start on Sunday.
LOCALES: dict[str, LocaleData] = {
    "en": LocaleData(
        months=_split(
            "January_February_March_April_May_June_July_August_September_October_November_December"
        ),
        months_short=_split("Jan_Feb_Mar_Apr_May_Jun_Jul_Aug_Sep_Oct_Nov_Dec"),
        weekdays=_split("Sunday_Monday_Tuesday_Wednesday_Thursday_Friday_Saturday"),
        weekdays_short=_split("Sun_Mon_Tue_Wed_Thu_Fri_Sat"),
    ),
    "es": LocaleData(
        months=_split(
            "enero_febrero_marzo_abril_mayo_junio_julio_agosto_septiembre_octubre_noviembre_diciembre"
        ),
        months_short=_split("ene_feb_mar_abr_may_jun_jul_ago_sep_oct_nov_dic"),
        weekdays=_split("domingo_lunes_martes_miércoles_jueves_viernes_sábado"),
        weekdays_short=_split("dom._lun._mar._mié._jue._vie._sáb."),
    ),
    "ca": LocaleData(
        months=_split(
            "gener_febrer_març_abril_maig_juny_juliol_agost_setembre_octubre_novembre_desembre"
        ),
        months_short=_split("gen._febr._març_abr._maig_juny_jul._ag._set._oct._nov._des."),
        weekdays=_split("diumenge_dilluns_dimarts_dimecres_dijous_divendres_dissabte"),
        weekdays_short=_split("dg._dl._dt._dc._dj._dv._ds."),
    ),
    "pt": LocaleData(
        months=_split(
            "janeiro_fevereiro_março_abril_maio_junho_julho_agosto_setembro_outubro_novembro_dezembro"
        ),
        months_short=_split("jan_fev_mar_abr_mai_jun_jul_ago_set_out_nov_dez"),
        weekdays=_split(
            "domingo_segunda-feira_terça-feira_quarta-feira_quinta-feira_sexta-feira_sábado"
        ),
        weekdays_short=_split("dom_seg_ter_qua_qui_sex_sáb"),
    ),
    "pl": LocaleData(
        months=_split(
            "styczeń_luty_marzec_kwiecień_maj_czerwiec_lipiec_sierpień_wrzesień_październik_listopad_grudzień"
        ),
        months_short=_split("sty_lut_mar_kwi_maj_cze_lip_sie_wrz_paź_lis_gru"),
        weekdays=_split("niedziela_poniedziałek_wtorek_środa_czwartek_piątek_sobota"),
        weekdays_short=_split("ndz_pon_wt_śr_czw_pt_sob"),
    ),
    "ru": LocaleData(
        months=_split(
            "январь_февраль_март_апрель_май_июнь_июль_август_сентябрь_октябрь_ноябрь_декабрь"
        ),
        months_short=_split("янв._февр._мар._апр._мая_июня_июля_авг._сент._окт._нояб._дек."),
        weekdays=_split("воскресенье_понедельник_вторник_среда_четверг_пятница_суббота"),
        weekdays_short=_split("вс_пн_вт_ср_чт_пт_сб"),
    ),
    "tr": LocaleData(
        months=_split("Ocak_Şubat_Mart_Nisan_Mayıs_Haziran_Temmuz_Ağustos_Eylül_Ekim_Kasım_Aralık"),
        months_short=_split("Oca_Şub_Mar_Nis_May_Haz_Tem_Ağu_Eyl_Eki_Kas_Ara"),
        weekdays=_split("Pazar_Pazartesi_Salı_Çarşamba_Perşembe_Cuma_Cumartesi"),
        weekdays_short=_split("Paz_Pts_Sal_Çar_Per_Cum_Cts"),
    ),
    "uk": LocaleData(
        months=_split(
            "січень_лютий_березень_квітень_травень_червень_липень_серпень_вересень_жовтень_листопад_грудень"
        ),
        months_short=_split("січ_лют_бер_квіт_трав_черв_лип_серп_вер_жовт_лист_груд"),
        weekdays=_split("неділя_понеділок_вівторок_середа_четвер_пʼятниця_субота"),
        weekdays_short=_split("ндл_пнд_втр_срд_чтв_птн_сбт"),
    ),
    "ko": LocaleData(
        months=tuple(f"{month}월" for month in range(1, 13)),
        months_short=tuple(f"{month}월" for month in range(1, 13)),
        weekdays=_split("일요일_월요일_화요일_수요일_목요일_금요일_토요일"),
        weekdays_short=_split("일_월_화_수_목_금_토"),
        meridiem=("오전", "오후"),
    ),
}

SUPPORTED_LOCALES = frozenset(LOCALES)


def resolve_locale(name: str | None) -> str:
    """Return a supported locale key for ``name``, falling back to English."""

    if not name:
        return DEFAULT_LOCALE
    normalised = str(name).strip().lower().replace("_", "-")
    if normalised in LOCALES:
        return normalised
    language = normalised.split("-", 1)[0]
    if language in LOCALES:
        return language
    logger.debug("Unsupported locale '%s', falling back to %s", name, DEFAULT_LOCALE)
    return DEFAULT_LOCALE


def _resolve_timezone(name: str | None) -> ZoneInfo | None:
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.debug("Invalid timezone '%s' for date formatting", name)
        return None


class DateFormatter:
    """Format epoch-millisecond timestamps with an explicit locale and timezone.

    ``timezone`` is an IANA name; ``None`` means the process' local time.
    ``clock`` returns the current time and exists so "today" can be pinned.
    """

    def __init__(
        self,
        locale: str | None = DEFAULT_LOCALE,
        timezone: str | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.locale = resolve_locale(locale)
        self.timezone = _resolve_timezone(timezone)
        self._data = LOCALES[self.locale]
        self._clock = clock

    def to_datetime(self, timestamp: int | float) -> datetime:
        return datetime.fromtimestamp(timestamp / 1000, tz=self.timezone)

    def now(self) -> datetime:
        if self._clock is None:
            return datetime.now(self.timezone)
        current = self._clock()
        if current.tzinfo is not None:
            return current.astimezone(self.timezone)
        return current

    def is_same_day(self, first: int | float, second: int | float) -> bool:
        return self.to_datetime(first).date() == self.to_datetime(second).date()

    def is_today(self, timestamp: int | float) -> bool:
        return self.to_datetime(timestamp).date() == self.now().date()

    def format(self, timestamp: int | float, pattern: str) -> str:
        """Format ``timestamp`` using dayjs-style tokens (``MMM D``, ``HH:mm``)."""

        dt = self.to_datetime(timestamp)
        return _TOKEN_RE.sub(lambda match: self._render_token(dt, match), pattern)

    def _render_token(self, dt: datetime, match: re.Match[str]) -> str:
        literal = match.group(1)
        if literal is not None:
            return literal
        token = match.group(0)
        data = self._data
        hour12 = dt.hour % 12 or 12
        weekday = (dt.weekday() + 1) % 7
        if token == "YYYY":
            return f"{dt.year:04d}"
        if token == "YY":
            return f"{dt.year % 100:02d}"
        if token == "MMMM":
            return data.months[dt.month - 1]
        if token == "MMM":
            return data.months_short[dt.month - 1]
        if token == "MM":
            return f"{dt.month:02d}"
        if token == "M":
            return str(dt.month)
        if token == "DD":
            return f"{dt.day:02d}"
        if token == "D":
            return str(dt.day)
        if token == "dddd":
            return data.weekdays[weekday]
        if token == "ddd":
            return data.weekdays_short[weekday]
        if token == "HH":
            return f"{dt.hour:02d}"
        if token == "H":
            return str(dt.hour)
        if token == "hh":
            return f"{hour12:02d}"
        if token == "h":
            return str(hour12)
        if token == "mm":
            return f"{dt.minute:02d}"
        if token == "m":
            return str(dt.minute)
        if token == "ss":
            return f"{dt.second:02d}"
        if token == "s":
            return str(dt.second)
        meridiem = data.meridiem[0 if dt.hour < 12 else 1]
        return meridiem if token == "A" else meridiem.lower()

    def verbose_date_time(
        self,
        timestamp: int | float,
        *,
        date_format: str | None = None,
        time_format: str | None = None,
    ) -> str:
        """Return the divider text for ``timestamp``.

        Timestamps from today render as the time only; anything older renders
        as ``"<date>, <time>"``.
        """

        formatted_time = self.format(timestamp, time_format or DEFAULT_TIME_FORMAT)
        if self.is_today(timestamp):
            return formatted_time
        formatted_date = self.format(timestamp, date_format or DEFAULT_DATE_FORMAT)
        return f"{formatted_date}, {formatted_time}"


def init_locale(locale: str | None = None, timezone: str | None = None) -> DateFormatter:
    """Return a formatter bound to ``locale`` (English when unsupported)."""

    return DateFormatter(locale, timezone)


def default_formatter() -> DateFormatter:
    """Return a formatter configured from ``LOCALE`` settings."""

    return DateFormatter(
        settings.get("LOCALE.language"),
        settings.get("LOCALE.timezone"),
    )


__all__ = [
    "DEFAULT_DATE_FORMAT",
    "DEFAULT_TIME_FORMAT",
    "DateFormatter",
    "LOCALES",
    "SUPPORTED_LOCALES",
    "default_formatter",
    "init_locale",
    "resolve_locale",
]

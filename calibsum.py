"""
Day31: キャリブレーション値の集計ツール（calibsum）

やること：
- テキストを1行ずつ読み、行の中の「最初の数字」と「最後の数字」で2桁の数を作る
  例：`pqr3stu8vwx` → 38、`treb7uchet` → 77（数字が1つなら両端とも同じ数字）
- 全行ぶん足し合わせた合計を出す（Part 1）
- Part 2 では "one" / "two" みたいな英単語の数字も数字として扱う
  例：`two1nine` → 29、`eightwothree` → 83

ハマりどころ（Part 2）：
- 単語同士が1文字を共有することがある（`twone` = two + one、`eightwo` = eight + two）
- 単語を数字に「置き換える」と共有している文字が消えて、もう片方が見つからなくなる
  → 置き換えずに、単語の両側を残したまま数字を「差し込む」（digitize_words）

流れ（logsum と同じ分け方）：
- CLI/env/config の解決 → 入力検証 → 行の読み込み → 集計（純粋関数）→ 出力
"""

from __future__ import annotations

import argparse
import logging
import re
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Sequence

import toolkit

LOGGER_NAME = "calibsum"

# 値 = インデックス（"zero" → 0 ... "nine" → 9）
DIGIT_WORDS: tuple[str, ...] = ("zero", "one", "two", "three", "four", "five", "six", "seven", "eight", "nine")

# 差し込んだ数字を周りの文字から区切る目印。普通のテキストには出てこない NUL を使う
MARKER = "\x00"

METHODS = ("insert", "scan")
PART_CHOICES = {"1": (1,), "2": (2,), "both": (1, 2)}


# -------------------------
# エラー
# -------------------------


class CalibrationError(ValueError):
    """集計できない入力を見つけたときの基底クラス。"""


class NoDigitsInLine(CalibrationError):
    """
    行に数字が1つも無い。0 として足したり、行を飛ばしたりはしない。
    """

    def __init__(self, line: str, line_no: int | None = None) -> None:
        self.line = line
        self.line_no = line_no
        where = f"line {line_no}" if line_no is not None else "line"
        super().__init__(f"{where}: no digits found in {line!r}")


# -------------------------
# 行の変換・計算（副作用なし）
# -------------------------


def digitize_words(line: str) -> str:
    """
    数字の英単語が出てくる位置に、その数字を差し込む。

    1単語ずつ順番に `word` → `word<MARKER>N<MARKER>word` と書き換える。
    単語を前後両方に残すのがポイント：
    - `twone`   : two の後ろに来る one は、右側に残した two から続けて見つかる
    - `eightwo` : eight の後ろの t は、左側に残した two の手前にそのまま残る
    どの単語も自分自身とは重ならないので、str.replace で全部の出現を拾える。
    単語が無い行はそのまま返る。
    """
    for value, word in enumerate(DIGIT_WORDS):
        if word in line:
            line = line.replace(word, f"{word}{MARKER}{value}{MARKER}{word}")
    return line


_FIRST_NUMERAL_RE = re.compile(r"[0-9]")
_LAST_NUMERAL_RE = re.compile(r"([0-9])[^0-9]*\Z")


def extract_edge_number(line: str, line_no: int | None = None) -> int:
    """
    行の先頭側・末尾側の数字（ASCII の 0-9 だけ）から `first * 10 + last` を作る。

    数字以外（MARKER や全角/他の文字体系の数字も含む）は無視する。
    数字が1つしか無ければ first == last なので 11 倍になる（7 → 77）。
    数字が無ければ NoDigitsInLine。
    """
    first = _FIRST_NUMERAL_RE.search(line)
    last = _LAST_NUMERAL_RE.search(line)
    if first is None or last is None:
        raise NoDigitsInLine(line, line_no)
    return int(first.group()) * 10 + int(last.group(1))


_WORD_VALUES = {str(i): i for i in range(10)} | {w: i for i, w in enumerate(DIGIT_WORDS)}
_NUMERAL_TOKEN_RE = re.compile(r"[0-9]")
_WORD_TOKEN_RE = re.compile("|".join(["[0-9]", *DIGIT_WORDS]))


def scan_edge_number(line: str, line_no: int | None = None, words: bool = False) -> int:
    """
    行を書き換えずに、両端の「数字トークン」を直接探すやり方。

    - first: 前から普通に search
    - last : 末尾から1文字ずつ位置をずらして match（重なった単語も取りこぼさない）
    words=True なら英単語もトークンとして数える。結果は digitize_words + extract_edge_number と同じになる。
    """
    pattern = _WORD_TOKEN_RE if words else _NUMERAL_TOKEN_RE
    head = pattern.search(line)
    if head is None:
        raise NoDigitsInLine(line, line_no)

    tail = head
    for pos in range(len(line) - 1, head.start(), -1):
        m = pattern.match(line, pos)
        if m is not None:
            tail = m
            break
    return _WORD_VALUES[head.group()] * 10 + _WORD_VALUES[tail.group()]


def line_value(line: str, line_no: int | None = None, words: bool = False, method: str = "insert") -> int:
    """1行ぶんの値。words=False が Part 1、words=True が Part 2。"""
    if method == "scan":
        return scan_edge_number(line, line_no, words=words)
    if method != "insert":
        raise ValueError(f"unknown method: {method!r}")
    if words:
        line = digitize_words(line)
    return extract_edge_number(line, line_no)


def sum_calibration(
    lines: Iterable[str],
    words: bool = False,
    method: str = "insert",
    logger: logging.Logger | None = None,
) -> int:
    """
    全行の値を足す。空の入力なら 0。

    - 数字の無い行（空行も含む）があればその場で NoDigitsInLine（途中までの合計は返さない）
    - 行番号は 1 始まり（エラー表示で元ファイルの行と合わせる）
    """
    total = 0
    for line_no, raw in enumerate(lines, start=1):
        line = raw.rstrip("\r\n")
        value = line_value(line, line_no, words=words, method=method)
        if logger is not None:
            logger.debug("line %d: %r -> %d", line_no, line, value)
        total += value
    return total


@dataclass(frozen=True)
class CalibrationReport:
    """
    集計結果DTO。

    - total_lines: 集計した行数
    - part1 / part2: 合計（指定されなかった Part は None）
    """

    total_lines: int
    part1: int | None
    part2: int | None


def compute_report(
    lines: Iterable[str],
    parts: Sequence[int] = (1, 2),
    method: str = "insert",
    logger: logging.Logger | None = None,
) -> CalibrationReport:
    """
    Part 1 / Part 2 をそれぞれ独立に集計する。

    2回走査するので、先に list にしておく（stdin は1回しか読めない）。
    """
    rows = list(lines)
    part1 = sum_calibration(rows, words=False, method=method, logger=logger) if 1 in parts else None
    part2 = sum_calibration(rows, words=True, method=method, logger=logger) if 2 in parts else None
    return CalibrationReport(total_lines=len(rows), part1=part1, part2=part2)


def build_json_payload(path: str, method: str, report: CalibrationReport) -> dict[str, Any]:
    return {
        "path": path,
        "method": method,
        "total_lines": report.total_lines,
        "part1": report.part1,
        "part2": report.part2,
    }


def format_report(report: CalibrationReport) -> list[str]:
    """人間向け表示。`Part 1:<TAB>合計` の形（指定された Part だけ）。"""
    out: list[str] = []
    if report.part1 is not None:
        out.append(f"Part 1:\t{report.part1}")
    if report.part2 is not None:
        out.append(f"Part 2:\t{report.part2}")
    return out


# -------------------------
# CLIパース（I/O境界：入力）
# -------------------------


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    CLI引数を定義して解析する。

    env/config で埋める項目は default=None にして「CLIで未指定」を区別できるようにする。
    """
    parser = argparse.ArgumentParser(description="Sum calibration values (first and last digit of each line).")

    parser.add_argument(
        "path",
        nargs="?",
        default=None,
        type=Path,
        help="入力ファイルのパス。'-' なら標準入力。",
    )
    parser.add_argument(
        "--part",
        choices=sorted(PART_CHOICES),
        default="both",
        help="出す Part（1 / 2 / both、default: both）",
    )
    parser.add_argument(
        "--method",
        choices=METHODS,
        default="insert",
        help="insert: 単語の位置に数字を差し込んでから数える / scan: 両端のトークンを直接探す",
    )
    parser.add_argument("--json", action="store_true", help="結果をJSONでstdoutに出す")
    parser.add_argument("--verbose", action="store_true", help="処理中の詳細ログをstderrに出す")
    parser.add_argument("--out", type=Path, default=None, help="JSON payload をファイルに保存する")
    parser.add_argument("--post", type=str, default="", help="JSON payload をPOSTするURL")
    parser.add_argument("--timeout", type=float, default=10.0, help="POSTのタイムアウト秒数（default: 10.0）")
    parser.add_argument("--config", type=Path, default=None, help="JSON設定ファイル（CLIが優先）")
    parser.add_argument("--env-file", type=Path, default=None, help=".env ファイル（OSの環境変数より優先）")

    return parser.parse_args(argv)


# -------------------------
# config / env の適用（優先順位：CLI > env > config）
# -------------------------

# オプション名 → (args の属性名, 変換関数)。path は位置引数なので別扱い
_SETTINGS: dict[str, tuple[str, Any]] = {
    "--part": ("part", str),
    "--method": ("method", str),
    "--json": ("json", toolkit.parse_bool),
    "--verbose": ("verbose", toolkit.parse_bool),
    "--out": ("out", Path),
    "--post": ("post", str),
    "--timeout": ("timeout", float),
}


def _convert(name: str, raw: Any, conv: Any, logger: logging.Logger) -> tuple[bool, Any]:
    # config の JSON なら bool がそのまま来る
    if conv is toolkit.parse_bool and isinstance(raw, bool):
        return True, raw
    try:
        return True, conv(str(raw))
    except ValueError as exc:
        logger.warning("ignored invalid value for %s: %r (%s)", name, raw, exc)
        return False, None


def apply_config(args: argparse.Namespace, cfg: dict[str, Any], provided: set[str], logger: logging.Logger) -> None:
    """config の値で「CLI未指定の項目」だけを埋める。"""
    if args.path is None and cfg.get("path"):
        args.path = Path(str(cfg["path"]))

    for opt, (attr, conv) in _SETTINGS.items():
        if opt in provided or attr not in cfg:
            continue
        ok, value = _convert(attr, cfg[attr], conv, logger)
        if ok:
            setattr(args, attr, value)

    logger.info("config applied (CLI overrides config)")


def apply_env(
    args: argparse.Namespace,
    env_file: dict[str, str],
    provided: set[str],
    logger: logging.Logger,
    path_from_cli: bool,
) -> None:
    """
    CALIBSUM_* の環境変数で「CLI未指定の項目」を上書きする（config より強い）。

    path は「CLIで渡されたか」を path_from_cli で受け取る（config で埋まった後だと区別できない）。
    """
    if not path_from_cli:
        v = toolkit.get_env("CALIBSUM_PATH", env_file)
        if v:
            args.path = Path(v)

    for opt, (attr, conv) in _SETTINGS.items():
        if opt in provided:
            continue
        name = f"CALIBSUM_{attr.upper()}"
        v = toolkit.get_env(name, env_file)
        if v is None:
            continue
        ok, value = _convert(name, v, conv, logger)
        if ok:
            setattr(args, attr, value)

    logger.info("env applied (CLI overrides env)")


def resolve_effective_args(argv: list[str] | None) -> tuple[argparse.Namespace, logging.Logger]:
    """
    CLI / env / config をまとめて、最終的に使う args を確定する。

    順番：
    1) CLI を解析（path が CLI で来たかを先に覚えておく）
    2) --env-file を読む
    3) config（最下位）→ env（中位）の順に適用
    4) verbose が変わりうるので logger を作り直す
    """
    args = parse_args(argv)
    path_from_cli = args.path is not None
    provided = toolkit.parse_provided_options(argv)

    logger = toolkit.setup_logger(LOGGER_NAME, args.verbose)

    env_file: dict[str, str] = {}
    if args.env_file is not None:
        env_file = toolkit.load_env_file(args.env_file, logger)

    if args.config is None and "--config" not in provided:
        v = toolkit.get_env("CALIBSUM_CONFIG", env_file)
        if v:
            args.config = Path(v)

    if args.config is not None:
        cfg = toolkit.load_json_object(args.config, logger)
        apply_config(args, cfg, provided, logger)

    apply_env(args, env_file, provided, logger, path_from_cli)

    logger = toolkit.setup_logger(LOGGER_NAME, args.verbose)
    return args, logger


def validate_args(args: argparse.Namespace) -> int:
    """
    入力検証。失敗したら終了コード 2。

    --part / --method は env/config からも来るので、argparse の choices とは別にここでも見る。
    """
    if args.part not in PART_CHOICES:
        print(f"Error: --part は {', '.join(sorted(PART_CHOICES))} のどれかです: {args.part}", file=sys.stderr)
        return 2
    if args.method not in METHODS:
        print(f"Error: --method は {', '.join(METHODS)} のどれかです: {args.method}", file=sys.stderr)
        return 2
    if args.timeout <= 0:
        print(f"Error: --timeout の値は0より大きい必要があります: {args.timeout}", file=sys.stderr)
        return 2

    if args.path is None:
        print("Error: input file missing（入力ファイルのパスを指定してください。標準入力なら '-'）", file=sys.stderr)
        return 2
    if str(args.path) == "-":
        return 0

    p: Path = args.path.expanduser()
    if not p.exists():
        print(f"Error: 指定されたパスが存在しません: {p}", file=sys.stderr)
        return 2
    if not p.is_file():
        print(f"Error: 指定されたパスはファイルではありません: {p}", file=sys.stderr)
        return 2
    return 0


def _open_lines(path: Path) -> tuple[str, Iterable[str]]:
    """
    入力を「行の列」にする。返り値は (表示用のパス, 行)。

    ファイルも stdin と同じく open して1行ずつ読む（行の区切り方を揃える）。
    """
    if str(path) == "-":
        return "-", sys.stdin
    p = path.expanduser()
    with p.open("r", encoding="utf-8") as fp:
        return str(p), list(fp)


# -------------------------
# 実行フロー
# -------------------------


def main(argv: list[str] | None = None) -> int:
    """
    実行入口（テストからも呼べる形）。

    終了コード：0 = 成功 / 1 = 集計・出力の失敗 / 2 = 引数の誤り
    """
    args, logger = resolve_effective_args(argv)

    rc = validate_args(args)
    if rc != 0:
        return rc

    try:
        display_path, lines = _open_lines(args.path)
    except (OSError, UnicodeDecodeError) as exc:
        logger.error("failed to read input: %s (%s)", args.path, exc)
        return 1

    parts = PART_CHOICES[args.part]
    logger.info("read start: path=%s part=%s method=%s", display_path, args.part, args.method)
    try:
        report = compute_report(lines, parts=parts, method=args.method, logger=logger)
    except CalibrationError as exc:
        logger.error("calibration failed: %s", exc)
        return 1
    logger.info("read done: total_lines=%d", report.total_lines)

    payload: dict[str, Any] | None = None
    if args.json or args.post or args.out is not None:
        payload = build_json_payload(path=display_path, method=args.method, report=report)

    if args.json and payload is not None:
        print(toolkit.dump_json(payload))
    else:
        for row in format_report(report):
            print(row)

    if args.out is not None and payload is not None:
        if not toolkit.write_json_file(args.out, payload, logger):
            return 1

    if args.post and payload is not None:
        if not toolkit.post_json(args.post, payload, timeout=args.timeout, logger=logger):
            return 1

    return 0


def cli() -> None:
    raise SystemExit(main(sys.argv[1:]))

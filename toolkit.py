"""
Day31: 小ツール共通部品（toolkit）— calibsum 向けに整理し直した版

狙い：
- calibsum 本体は「行 → 数値 → 合計」に集中させ、周辺のI/Oはここに寄せる
  例：logger構成、.env読み取り、bool変換、JSON保存、HTTP POST
- env/config の「どのキーを読むか」はツール側の仕様なので、ここには置かない

Day24 からの変更点：
- httpx はトップレベルで import する（pyproject の依存に入れたので “無いかも” を考えない）
- post_json に transport を渡せるようにした（テストで httpx.MockTransport を差し込む）
"""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

import httpx

_TRUE_WORDS = {"1", "true", "yes", "y", "on"}
_FALSE_WORDS = {"0", "false", "no", "n", "off"}


def parse_provided_options(argv: list[str] | None) -> set[str]:
    """
    CLI で明示された --option の集合を返す（`--out=x` は `--out` として数える）。

    env/config は「CLIで指定されなかった項目」だけを埋める、というルールのために使う。
    """
    if argv is None:
        return set()
    return {token.split("=", 1)[0] for token in argv if token.startswith("--")}


def parse_bool(value: str) -> bool:
    """
    env 用の bool 変換。

    true: 1, true, yes, y, on / false: 0, false, no, n, off
    どちらでもない文字列は ValueError（"ture" みたいな typo を黙って True にしない）。
    """
    v = value.strip().lower()
    if v in _TRUE_WORDS:
        return True
    if v in _FALSE_WORDS:
        return False
    raise ValueError(f"not a boolean: {value!r}")


def load_env_file(path: Path, logger: logging.Logger) -> dict[str, str]:
    """
    .env 形式（KEY=VALUE）を読んで dict にする。

    - 空行と # コメントは無視
    - `export KEY=VALUE` も受け付ける
    - 値を囲むクォート（' "）は外す
    - `=` の無い行は飛ばす
    読めなかったら logger.error を出して空dict（設定が無いのと同じ扱い）。
    """
    try:
        text = path.expanduser().read_text(encoding="utf-8")
    except OSError as exc:
        logger.error("env file load failed: %s (%s)", path, exc)
        return {}

    env: dict[str, str] = {}
    for row in text.splitlines():
        line = row.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].lstrip()
        if "=" not in line:
            continue
        key, val = (part.strip() for part in line.split("=", 1))
        if len(val) >= 2 and val[0] == val[-1] and val[0] in "\"'":
            val = val[1:-1]
        if key:
            env[key] = val
    logger.info("env file loaded: %s (%d keys)", path, len(env))
    return env


def get_env(name: str, env_file: dict[str, str]) -> str | None:
    """環境変数を読む。--env-file の値が OS の環境変数より優先。空文字は未設定扱い。"""
    for v in (env_file.get(name), os.getenv(name)):
        if v:
            return v
    return None


def load_json_object(path: Path, logger: logging.Logger) -> dict[str, Any]:
    """
    JSON設定ファイルを読む。

    壊れている / オブジェクトでない場合はエラーログを出して {} を返す
    （config は最下位の設定なので、無くても動けるようにする）。
    """
    try:
        data = json.loads(path.expanduser().read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.error("config load failed: %s (%s)", path, exc)
        return {}
    if not isinstance(data, dict):
        logger.error("config must be a JSON object: %s", path)
        return {}
    return data


def setup_logger(name: str, verbose: bool) -> logging.Logger:
    """
    stderr に出す logger を作る。stdout は結果（Part 1 / Part 2、JSON）専用。

    何度呼んでも handler が増えないように、毎回 handlers を作り直す。
    """
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO if verbose else logging.WARNING)
    logger.propagate = False

    logger.handlers.clear()
    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
    logger.addHandler(handler)
    return logger


def dump_json(payload: dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, indent=2)


def write_json_file(path: Path, payload: dict[str, Any], logger: logging.Logger) -> bool:
    """payload をファイルに保存する。失敗は logger.error + False。"""
    try:
        out_path = path.expanduser().resolve()
        out_path.write_text(dump_json(payload) + "\n", encoding="utf-8")
    except OSError as exc:
        logger.error("failed to write payload to %s: %s", path, exc)
        return False
    logger.info("payload written to %s", out_path)
    return True


def post_json(
    url: str,
    payload: dict[str, Any],
    timeout: float,
    logger: logging.Logger,
    transport: httpx.BaseTransport | None = None,
) -> bool:
    """
    payload を JSON で POST する。

    - 4xx/5xx は失敗扱い（レスポンス本文の先頭だけ warning に出す）
    - 通信エラーも False（例外は外に出さない。終了コードは呼び出し側で決める）
    """
    try:
        with httpx.Client(timeout=timeout, transport=transport) as client:
            resp = client.post(url, json=payload)
    except httpx.HTTPError as exc:
        logger.error("HTTP POST failed: %s (%s)", url, exc)
        return False

    logger.info("POST %s -> %d", url, resp.status_code)
    if resp.status_code >= 400:
        logger.warning("response body (truncated): %s", resp.text[:200])
        return False
    return True

"""DecisionLedger - Evidence Extractor

从 PR 描述中重新提取工单与聊天线程引用，用于重算时抵御上游提取偏差。
"""

from __future__ import annotations

import re

# Jira: ABC-123 / https://xxx.atlassian.net/browse/ABC-123
_JIRA_PATTERN = re.compile(r"\b([A-Z][A-Z0-9]+-\d+)\b")
_JIRA_URL_PATTERN = re.compile(r"https?://[^/]+\.atlassian\.net/browse/([A-Z][A-Z0-9]+-\d+)")

# Linear: ENG-42 / https://linear.app/team/issue/ENG-42
_LINEAR_PATTERN = re.compile(r"\b([A-Z]+-\d+)\b")
_LINEAR_URL_PATTERN = re.compile(r"https?://linear\.app/[^/]+/issue/([A-Z]+-\d+)")

# Slack 线程
_CHAT_THREAD_PATTERN = re.compile(r"https?://[a-z0-9-]+\.slack\.com/archives/[A-Z0-9]+/p\d+")


def extract_ticket_links(text: str | None) -> list[str]:
    """提取工单引用（去重，保持首次出现顺序）"""
    if not text:
        return []

    tickets: dict[str, None] = {}
    for pattern in (_JIRA_PATTERN, _JIRA_URL_PATTERN, _LINEAR_PATTERN, _LINEAR_URL_PATTERN):
        for match in pattern.finditer(text):
            tickets.setdefault(match.group(1), None)
    return list(tickets)


def extract_chat_links(text: str | None) -> list[str]:
    """提取聊天线程链接（去重，保持首次出现顺序）"""
    if not text:
        return []
    return list(dict.fromkeys(_CHAT_THREAD_PATTERN.findall(text)))


def classify_ticket_source(link: str) -> str:
    """识别工单来源：jira / linear / github / unknown"""
    lowered = link.lower()
    if "linear.app" in lowered:
        return "linear"
    if "github.com" in lowered and "/issues/" in lowered:
        return "github"
    if "atlassian" in lowered or _JIRA_PATTERN.search(link):
        return "jira"
    return "unknown"

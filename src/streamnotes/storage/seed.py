"""Demo notes used to populate an empty persisted store."""

from typing import List

from streamnotes.schemas.item import Item, ItemKind
from streamnotes.utils import now_ms

WELCOME_NOTE = """# 欢迎使用 StreamNotes

StreamNotes 是一个本地优先的 Markdown 笔记应用。

## 两种存储模式

* **浏览器存储**: 笔记保存在本地存储中，图片以 data URI 形式内嵌。
* **本地文件夹**: 打开电脑上的真实文件夹，笔记和图片都是普通文件。

## 图片管理

1. 上传的图片保存在笔记所在的文件夹中。
2. 笔记中插入 `![图片名](image.png)` 相对路径引用。
3. 删除引用后，使用 **清理资源** 删除没有被任何笔记引用的图片。

> 侧边栏只显示文件夹和 `.md` 笔记，图片文件默认隐藏。
"""


def demo_items() -> List[Item]:
    """Build a fresh copy of the demo tree with current timestamps."""
    now = now_ms()

    def folder(item_id: str, parent_id, name: str, expanded: bool) -> Item:
        return Item(
            id=item_id,
            parent_id=parent_id,
            name=name,
            kind=ItemKind.FOLDER,
            created_at=now,
            updated_at=now,
            is_expanded=expanded,
        )

    def note(item_id: str, parent_id, name: str, content: str) -> Item:
        return Item(
            id=item_id,
            parent_id=parent_id,
            name=name,
            kind=ItemKind.FILE,
            content=content,
            created_at=now,
            updated_at=now,
        )

    return [
        folder("root-folder-1", None, "个人生活", True),
        folder("root-folder-2", None, "工作", False),
        note(
            "note-1",
            "root-folder-1",
            "想法.md",
            "# 我的点子\n\n- [ ] 整理读书笔记\n- [ ] 学习一门新语言",
        ),
        note("note-2", "root-folder-1", "日记.md", "# 每日日记\n\n今天天气不错，写了一些代码。"),
        note(
            "note-3",
            "root-folder-2",
            "会议纪要.md",
            "## Q3 计划\n\n**参会者:** Alice, Bob\n\n1. 审查指标\n2. 更新路线图",
        ),
        note("note-welcome", None, "使用说明.md", WELCOME_NOTE),
    ]

"""
CLI 命令：mandala
离线检查与导出曼陀罗 JSON 备份
"""
import click
import sys
from pathlib import Path

# 添加项目根目录到 sys.path，以便导入 core 模块
project_root = Path(__file__).parent.parent
sys.path.append(str(project_root))

from core import chart_model
from core.exceptions import ChartValidationError
from core.import_export import export_filename, export_text, load_chart_file, save_chart_file
from core.models import CellPath
from core.paths import EXPORT_DIR
from core.progress import progress_report


@click.group()
def cli():
    """Mandala Chart 管理命令"""
    pass


@cli.command()
@click.argument("file", type=click.Path(dir_okay=False))
def validate(file):
    """检查 JSON 备份是否可以导入"""
    try:
        chart = load_chart_file(file)
    except ChartValidationError as e:
        click.echo(f"❌ {e.get_user_message()}", err=True)
        sys.exit(1)

    filled_subs = sum(1 for sub in chart.sub_goals if sub.text)
    filled_tasks = sum(1 for group in chart.tasks for task in group if task.text)
    click.echo(f"✅ 有效的曼陀羅檔案：{chart.main_goal.text or '(未定義核心目標)'}")
    click.echo(f"   子目標 {filled_subs}/8，任務 {filled_tasks}/64")


@cli.command("export-text")
@click.argument("file", type=click.Path(dir_okay=False))
@click.option("--output", "-o", type=click.Path(dir_okay=False), default=None, help="输出文件（默认打印）")
@click.option("--save", is_flag=True, help="按默认文件名保存到导出目录")
def export_text_cmd(file, output, save):
    """把 JSON 备份导出为纯文本大纲"""
    try:
        chart = load_chart_file(file)
    except ChartValidationError as e:
        click.echo(f"❌ {e.get_user_message()}", err=True)
        sys.exit(1)

    text = export_text(chart)
    if save and not output:
        output = EXPORT_DIR / export_filename(chart, "txt")
    if output:
        target = Path(output)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text, encoding="utf-8")
        click.echo(f"📄 已匯出: {target}")
    else:
        click.echo(text, nl=False)


@cli.command()
@click.argument("file", type=click.Path(dir_okay=False))
def progress(file):
    """显示各子目标与整体进度"""
    try:
        chart = load_chart_file(file)
    except ChartValidationError as e:
        click.echo(f"❌ {e.get_user_message()}", err=True)
        sys.exit(1)

    report = progress_report(chart)
    click.echo(f"🎯 {chart.main_goal.text or '(未定義核心目標)'}")
    click.echo(f"📊 整體進度: {report.overall}%")
    for item in report.sub_goals:
        if not item.text:
            continue
        mark = "✅" if item.is_completed else "  "
        click.echo(
            f"{mark} [{item.index + 1}] {item.text}: {item.progress}% "
            f"({item.completed_tasks}/{item.filled_tasks})"
        )


@cli.command()
@click.argument("file", type=click.Path(dir_okay=False))
@click.option("--goal", default="", help="核心目标文字")
@click.option("--force", is_flag=True, help="覆盖已存在的文件")
def new(file, goal, force):
    """创建一个空白曼陀罗 JSON 文件"""
    target = Path(file)
    if target.exists() and not force:
        click.echo(f"❌ 檔案已存在: {target}（使用 --force 覆蓋）", err=True)
        sys.exit(1)

    chart = chart_model.create_empty()
    if goal:
        chart = chart_model.update_cell_at(chart, CellPath.main(), {"text": goal})
    save_chart_file(chart, target)
    click.echo(f"✅ 已建立: {target}")


if __name__ == "__main__":
    cli()

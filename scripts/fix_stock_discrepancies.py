"""
订单库存差异检查与修复脚本

功能：
- 列出处于取消/退款状态但库存没有回补的订单
- 预览单个订单的回补结果（不写库）
- 修复单个订单或批量修复

使用方式：
python scripts/fix_stock_discrepancies.py find --limit 50
python scripts/fix_stock_discrepancies.py check 42
python scripts/fix_stock_discrepancies.py fix 42
python scripts/fix_stock_discrepancies.py fix 42 --force  # 已有回补标记时仍然回补
python scripts/fix_stock_discrepancies.py fix-all --limit 20
"""
import asyncio
import argparse
import sys
from pathlib import Path

# 添加项目根目录到路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from sf_core.config import get_settings
from sf_core.database import DatabaseManager
from sf_core.services.stock import StockService, ReconcileResult
from sf_core.utils.errors import StorefrontException
from sf_core.utils.logger import setup_logging


def print_result(result: ReconcileResult) -> None:
    """打印单个订单的对账结果"""
    order = result.order
    print(f"订单 #{order['id']}  状态: {order['status']}  下单时间: {order['created_at']}")
    if order["stock_restored_at"]:
        print(f"  已有回补标记: {order['stock_restored_at']}")

    print(f"  {'商品ID':<10}{'商品名':<30}{'数量':>6}{'当前库存':>10}{'回补后':>10}")
    for item in result.items:
        after = item.get("new_stock", item.get("potential_new_stock"))
        line = (
            f"  {str(item['product_id']):<10}{str(item['product_name'] or '-')[:28]:<30}"
            f"{item['quantity']:>6}{str(item['current_stock']):>10}{str(after):>10}"
        )
        if item["error"]:
            line += f"  ✗ {item['error']}"
        elif item.get("rolled_back"):
            line += "  (已回滚)"
        print(line)

    if result.dry_run:
        print("  (预览模式，未写入数据库)")
    elif result.committed:
        print(f"  ✓ 已修复 {len(result.items)} 个明细")
    else:
        print(f"  ✗ 修复失败，已整体回滚: {'; '.join(result.errors)}")


async def cmd_find(service: StockService, limit: int) -> int:
    discrepancies = await service.find_discrepancies(limit=limit)
    if not discrepancies:
        print("✓ 没有发现库存差异")
        return 0

    print(f"发现 {len(discrepancies)} 张订单库存未回补:\n")
    print(f"{'订单ID':<10}{'状态':<20}{'下单时间':<34}{'已过小时':>10}{'明细数':>8}")
    print("-" * 82)
    for d in discrepancies:
        print(f"{d['order_id']:<10}{d['status']:<20}{d['created_at']:<34}{d['age_hours']:>10}{len(d['items']):>8}")
    return 0


async def cmd_check(service: StockService, order_id: int) -> int:
    result = await service.reconcile(order_id, dry_run=True)
    print_result(result)
    return 0 if result.success else 1


async def cmd_fix(service: StockService, order_id: int, force: bool) -> int:
    result = await service.reconcile(order_id, dry_run=False, force=force)
    print_result(result)
    return 0 if result.committed else 1


async def cmd_fix_all(service: StockService, limit: int) -> int:
    discrepancies = await service.find_discrepancies(limit=limit)
    if not discrepancies:
        print("✓ 没有需要修复的订单")
        return 0

    fixed = 0
    failed = []
    for d in discrepancies:
        print(f"\n{'='*60}")
        try:
            result = await service.reconcile(d["order_id"])
        except StorefrontException as e:
            print(f"✗ 订单 #{d['order_id']} 跳过: {e.detail}")
            failed.append(d["order_id"])
            continue

        print_result(result)
        if result.committed:
            fixed += 1
        else:
            failed.append(d["order_id"])

    print(f"\n{'='*60}")
    print(f"修复完成: 成功 {fixed} 张，失败 {len(failed)} 张")
    if failed:
        print(f"失败订单: {', '.join(str(i) for i in failed)}")
    return 0 if not failed else 1


async def main(args) -> int:
    settings = get_settings()
    db_manager = DatabaseManager(settings)
    service = StockService(db_manager, settings)

    try:
        if args.command == "find":
            return await cmd_find(service, args.limit)
        if args.command == "check":
            return await cmd_check(service, args.order_id)
        if args.command == "fix":
            return await cmd_fix(service, args.order_id, args.force)
        return await cmd_fix_all(service, args.limit)
    except StorefrontException as e:
        print(f"✗ {e.code}: {e.detail}")
        return 1
    finally:
        await db_manager.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="订单库存差异检查与修复")
    subparsers = parser.add_subparsers(dest="command", required=True)

    find_parser = subparsers.add_parser("find", help="列出库存未回补的订单")
    find_parser.add_argument("--limit", type=int, default=50, help="最多列出多少张订单")

    check_parser = subparsers.add_parser("check", help="预览单个订单的回补结果")
    check_parser.add_argument("order_id", type=int)

    fix_parser = subparsers.add_parser("fix", help="修复单个订单")
    fix_parser.add_argument("order_id", type=int)
    fix_parser.add_argument("--force", action="store_true", help="已有回补标记时仍然回补")

    fix_all_parser = subparsers.add_parser("fix-all", help="批量修复")
    fix_all_parser.add_argument("--limit", type=int, default=50)

    args = parser.parse_args()
    setup_logging(log_format="text")
    sys.exit(asyncio.run(main(args)))

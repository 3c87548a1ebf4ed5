"""
Storefront 核心包
订单状态流转、退款审批与库存对账
"""
__version__ = "1.0.0"

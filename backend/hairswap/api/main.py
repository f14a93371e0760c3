"""
API 路由聚合模块

将所有业务路由模块聚合到一个统一的 router 中，注册到主应用（hairswap/main.py）上。

路由模块说明：
- auth: 注册、登录、会话
- points: 积分余额、流水
- recharge: 充值下单、订单查询、网关回调
- admin: 充值订单人工审核
- generate: 付费发型生成
- utils: 健康检查
"""
from fastapi import APIRouter

from hairswap.api.routes import admin, auth, generate, points, recharge, utils

api_router = APIRouter()

api_router.include_router(auth.router)  # /auth/*
api_router.include_router(points.router)  # /points/*
api_router.include_router(recharge.router)  # /recharge/*
api_router.include_router(admin.router)  # /admin/*
api_router.include_router(generate.router)  # /generate
api_router.include_router(utils.router)  # /utils/*

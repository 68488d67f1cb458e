"""轨道计算模块 - 轨道模型、参考系转换、位置采样和过境预报

子模块按需导入（core.models 依赖 core.orbit.utils，此处不做聚合导入）。
"""

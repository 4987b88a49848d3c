"""
Training Matrix Platform
Blueprint registry.

    health_bp            /api/v1/health/*
    training_matrix_bp   /api/v1/training-matrix/*
"""

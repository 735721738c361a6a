"""
Object Storage Module

Supabase Storage access for uploaded gallery images.
"""

from app.infrastructure.storage.supabase_storage import (
    SupabaseStorage,
    build_storage_path,
    get_storage,
)

__all__ = ["SupabaseStorage", "build_storage_path", "get_storage"]

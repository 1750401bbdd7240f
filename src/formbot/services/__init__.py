"""Service layer: session store, form engine, and submission dispatcher."""

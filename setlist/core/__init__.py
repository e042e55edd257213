"""
Setlist Connect Core - the overlay & synchronization engine.

Core modules:

1. SECTION CODEC (section_codec.py)
   - Packs (gig_id, section) facts into the flat shared tag collection
   - Non-tokens are ordinary tags; decoding never raises

2. OVERLAY (overlay.py)
   - Resolves effective section and effective singer keys per gig
   - Pure AppState updaters for the overlay maps

3. MUTATION STORE (mutation_store.py)
   - Owns the snapshot, the undo stack and the admin-only gate
   - Undo is local-view-only

4. SYNC STATE (sync_state.py)
   - IDLE / RELOADING state machine for the reconciler
"""

"""
Interprocess primitives for moving one count-prefixed message between a
producer and a consumer process.

The layers are:
  1. Transports: anonymous pipes, named pipes (FIFOs) & POSIX shared memory,
     each yielding byte-level endpoints
  2. Reliable transfer over those endpoints, tolerant of partial reads/writes
  3. A fixed-width wire format: u32 count + count * i32, host byte order

SEE:
 - https://man7.org/linux/man-pages/man7/pipe.7.html
 - https://man7.org/linux/man-pages/man3/mkfifo.3.html
 - https://man7.org/linux/man-pages/man7/shm_overview.7.html
"""
